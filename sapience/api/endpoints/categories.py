from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List
from sapience.core.database import get_db
from sapience.core.auth import get_current_user
from sapience.models.category import Category
from sapience.models.user import User
from sapience.schemas.category import Category as CategorySchema, CategoryCreate

router = APIRouter()


@router.get("/", response_model=List[CategorySchema])
def get_categories(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    """Get all categories, alphabetically."""
    return db.query(Category).order_by(Category.name).all()


@router.post("/", response_model=CategorySchema)
def create_category(
    category: CategoryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Create a category feeds can be filed under."""
    existing = db.query(Category).filter(Category.name == category.name).first()
    if existing:
        raise HTTPException(
            status_code=400, detail="Category with this name already exists"
        )

    db_category = Category(name=category.name)
    db.add(db_category)
    db.commit()
    db.refresh(db_category)
    return db_category


@router.delete("/{category_id}")
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Delete a category. Its feeds stay, uncategorized."""
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")

    db.delete(category)
    db.commit()
    return {"message": "Category deleted successfully"}
