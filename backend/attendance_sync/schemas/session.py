"""
Schémas Pydantic pour la session utilisateur (connexion en ligne uniquement).
"""

from typing import Optional

from pydantic import BaseModel, EmailStr, field_validator

from attendance_sync.services.identity_gate import Identity


class SessionLogin(BaseModel):
    email: EmailStr
    password: str

    @field_validator("password")
    @classmethod
    def password_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("Le mot de passe est obligatoire.")
        return v


class SessionState(BaseModel):
    authenticated: bool
    online: bool
    identity: Optional[Identity] = None
