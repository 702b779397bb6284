from flask import session
from flask_login import UserMixin
from . import login_manager
from .state import TOKENS_SESSION_KEY, USER_SESSION_KEY


# signed-in user as described by the booking API (/user/me, /user/login)
class User(UserMixin):
    def __init__(self, user_id: str, email: str = "", phone: str = "", full_name: str = "", role: str = "user"):
        self.id = user_id
        self.email = email
        self.phone = phone
        self.full_name = full_name
        self.role = role

    @classmethod
    def from_payload(cls, data: dict) -> "User":
        return cls(
            user_id=str(data.get("userId") or data.get("id") or ""),
            email=data.get("email") or "",
            phone=data.get("phone") or "",
            full_name=data.get("fullName") or "",
            role=data.get("role") or "user",
        )

    def to_payload(self) -> dict:
        return {
            "userId": self.id,
            "email": self.email,
            "phone": self.phone,
            "fullName": self.full_name,
            "role": self.role,
        }

    def __repr__(self):
        return f"<User {self.id} {self.email}>"


@login_manager.user_loader
def load_user(user_id):
    data = session.get(USER_SESSION_KEY)
    if not data or not session.get(TOKENS_SESSION_KEY):
        return None
    user = User.from_payload(data)
    return user if user.id == user_id else None
