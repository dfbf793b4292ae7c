from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from . import schemas, models, auth, namespaces
from .db import get_db
from .errors import storage_errors

router = APIRouter(prefix="/auth", tags=["auth"])
user_router = APIRouter(prefix="/api/user", tags=["user"])


@router.post("/register", response_model=schemas.UserOut, status_code=status.HTTP_201_CREATED)
def register(data: schemas.UserCreate, db: Session = Depends(get_db)):
    hashed = auth.get_password_hash(data.password)
    user = namespaces.register_user(db, name=data.name.strip(), email=data.email, hashed_password=hashed)
    return user


@router.post("/login", response_model=schemas.Token)
def login(data: schemas.UserLogin, db: Session = Depends(get_db)):
    with storage_errors(db, "load user"):
        user = db.query(models.User).filter(models.User.email == data.email).first()
    if not user or not auth.verify_password(data.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return {"access_token": auth.create_access_token({"sub": str(user.id)}), "token_type": "bearer"}


@router.get("/me", response_model=schemas.UserOut)
def me(user: models.User = Depends(auth.get_current_user)):
    return user


@user_router.get("/namespace", response_model=schemas.NamespaceOut)
def get_namespace(user: models.User = Depends(auth.get_current_user)):
    """Namespace of the authenticated user."""
    return {"namespace": user.namespace}
