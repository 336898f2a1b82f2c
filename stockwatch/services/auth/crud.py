"""
CRUD (Create, Read, Update, Delete) operations for the Auth service.

This module contains all database operations for user accounts.
"""
from typing import Optional
from sqlalchemy import or_
from sqlalchemy.orm import Session
from ... import models


def get_user_by_username_or_email(db: Session, username: str, email: str) -> Optional[models.User]:
    return (
        db.query(models.User)
        .filter(or_(models.User.username == username, models.User.email == email))
        .first()
    )


def email_taken_by_other(db: Session, email: str, user_id: int) -> bool:
    return (
        db.query(models.User.id)
        .filter(models.User.email == email, models.User.id != user_id)
        .first()
        is not None
    )


def create_user(db: Session, username: str, email: str, password_hash: str, role: str = "user") -> models.User:
    """
    Create a new user in the database.

    Returns:
        Created User object
    """
    db_user = models.User(username=username, email=email, password_hash=password_hash, role=role)
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user


def update_profile(db: Session, db_user: models.User, username: str, email: str) -> models.User:
    db_user.username = username
    db_user.email = email
    db.commit()
    db.refresh(db_user)
    return db_user


def update_password(db: Session, db_user: models.User, password_hash: str) -> None:
    db_user.password_hash = password_hash
    db.commit()
