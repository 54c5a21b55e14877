import uuid
from sqlalchemy.orm import Session
from triply.core.errors import UserNotFound
from triply.models.user import User

ROLES = ("user", "admin")

def create_user(db: Session, email: str, full_name: str = "", phone: str = "", role: str = "user") -> User:
    email_l = (email or "").strip().lower()
    if not email_l:
        raise ValueError("email required")
    if role not in ROLES:
        raise ValueError("invalid role")
    if db.query(User).filter(User.email == email_l).first():
        raise ValueError("email already exists")
    u = User(
        id=str(uuid.uuid4()),
        email=email_l,
        full_name=full_name or "",
        phone=phone or "",
        role=role,
        is_active=True,
    )
    db.add(u)
    db.commit()
    db.refresh(u)
    return u

def get_user(db: Session, user_id: str) -> User:
    u = db.get(User, user_id)
    if not u:
        raise UserNotFound(user_id)
    return u

def get_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == (email or "").strip().lower()).first()
