# fabricpos/routers/categories.py
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from fabricpos.crud import products as crud
from fabricpos.database import get_db
from fabricpos.models import Category
from fabricpos.pagination import Pagination, sanitize_query
from fabricpos.schemas.common import Envelope, Page, ok
from fabricpos.schemas.products import CategoryCreate, CategoryRead, CategoryUpdate
from fabricpos.security import Workspace, check_include_inactive, get_workspace, require_admin

router = APIRouter()


@router.get("/", response_model=Envelope[Page[CategoryRead]])
def read_categories(
    search: Optional[str] = None,
    include_inactive: bool = False,
    paging: Pagination = Depends(),
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    query = db.query(Category).filter(Category.organization_id == workspace.id)
    if not check_include_inactive(workspace, include_inactive):
        query = query.filter(Category.is_active == True)
    search = sanitize_query(search)
    if search:
        query = query.filter(Category.name.ilike(f"%{search}%"))

    page = paging.paginate(query, Category, ("created_at", "name"))
    page["items"] = [crud.category_payload(db, c) for c in page["items"]]
    return ok(page)


@router.get("/{category_id}", response_model=Envelope[CategoryRead])
def read_category(category_id: int, db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    category = crud.get_category(db, workspace.id, category_id, active_only=False)
    return ok(crud.category_payload(db, category))


@router.post("/", response_model=Envelope[CategoryRead], status_code=status.HTTP_201_CREATED)
def create_category(
    category_in: CategoryCreate,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(require_admin),
):
    crud.ensure_category_name_free(db, workspace.id, category_in.name)
    category = Category(organization_id=workspace.id, **category_in.model_dump())
    db.add(category)
    db.commit()
    db.refresh(category)
    return ok(crud.category_payload(db, category), "Category created successfully")


@router.put("/{category_id}", response_model=Envelope[CategoryRead])
def update_category(
    category_id: int,
    category_in: CategoryUpdate,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(require_admin),
):
    category = crud.get_category(db, workspace.id, category_id, active_only=False)
    update_data = category_in.model_dump(exclude_unset=True)
    if update_data.get("name"):
        crud.ensure_category_name_free(db, workspace.id, update_data["name"], exclude_id=category.id)
    if update_data.get("is_active") is False:
        crud.deactivate_category(db, category)

    for field, value in update_data.items():
        setattr(category, field, value)
    db.commit()
    db.refresh(category)
    return ok(crud.category_payload(db, category), "Category updated successfully")


@router.delete("/{category_id}", response_model=Envelope[None])
def delete_category(category_id: int, db: Session = Depends(get_db), workspace: Workspace = Depends(require_admin)):
    category = crud.get_category(db, workspace.id, category_id)
    crud.deactivate_category(db, category)
    db.commit()
    return ok(None, "Category deleted successfully")
