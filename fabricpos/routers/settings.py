# fabricpos/routers/settings.py
import base64
import io
import logging
from typing import List

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import Response
from PIL import Image, UnidentifiedImageError
from sqlalchemy.orm import Session

from fabricpos.crud import settings as crud
from fabricpos.database import get_db
from fabricpos.exceptions import AppError
from fabricpos.schemas.common import Envelope, ok
from fabricpos.schemas.settings import (
    BusinessSettings, BusinessSettingsUpdate, SampleInvoiceRequest, SettingRead, SettingUpsert,
    WhatsAppSettings, WhatsAppSettingsUpdate, WhatsAppTestRequest,
)
from fabricpos.security import Workspace, get_workspace, require_admin
from fabricpos.utils import whatsapp
from fabricpos.utils.pdf_generator import generate_invoice_pdf, sample_invoice

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_LOGO_BYTES = 2 * 1024 * 1024


def _masked(config: WhatsAppSettings) -> dict:
    data = config.model_dump()
    data["access_token"] = crud.mask_secret(config.access_token)
    return data


# -----------------------------
# WhatsApp
# -----------------------------
@router.get("/whatsapp", response_model=Envelope[WhatsAppSettings])
def read_whatsapp_settings(db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    return ok(_masked(crud.get_whatsapp_settings(db, workspace.id)))


@router.put("/whatsapp", response_model=Envelope[WhatsAppSettings])
def update_whatsapp_settings(
    data: WhatsAppSettingsUpdate,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(require_admin),
):
    changes = data.model_dump(exclude_unset=True)
    token = changes.get("access_token")
    if token and token.startswith("****"):
        # the masked value from GET was sent back unchanged
        changes.pop("access_token")
    config = crud.save_whatsapp_settings(db, workspace.id, changes)
    db.commit()
    logger.info(f"WhatsApp settings updated for workspace {workspace.id}: {sorted(changes)}")
    return ok(_masked(config), "WhatsApp settings updated")


@router.post("/whatsapp/test", response_model=Envelope[dict])
def send_test_whatsapp(
    data: WhatsAppTestRequest,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(require_admin),
):
    config = crud.get_whatsapp_settings(db, workspace.id)
    result = whatsapp.send_message(config, data.phone, data.message)
    return ok(result, "Test message sent" if result["sent"] else "Open the link to send the test message")


# -----------------------------
# Business info
# -----------------------------
@router.get("/business/info", response_model=Envelope[BusinessSettings])
def read_business_info(db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    return ok(crud.get_business_settings(db, workspace.id))


@router.put("/business/info", response_model=Envelope[BusinessSettings])
def update_business_info(
    data: BusinessSettingsUpdate,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(require_admin),
):
    business = crud.save_business_settings(db, workspace.id, data.model_dump(exclude_unset=True))
    db.commit()
    return ok(business, "Business information updated")


@router.post("/business/logo", response_model=Envelope[BusinessSettings])
async def upload_business_logo(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(require_admin),
):
    if not (file.content_type or "").startswith("image/"):
        raise AppError.bad_request("Logo must be an image file")
    contents = await file.read()
    if not contents:
        raise AppError.bad_request("The uploaded file is empty")
    if len(contents) > MAX_LOGO_BYTES:
        raise AppError.bad_request("Logo must be smaller than 2 MB")

    try:
        with Image.open(io.BytesIO(contents)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError):
        raise AppError.bad_request("The uploaded file is not a valid image")

    data_url = f"data:{file.content_type};base64,{base64.b64encode(contents).decode('ascii')}"
    business = crud.save_business_settings(db, workspace.id, {"business_logo": data_url})
    db.commit()
    return ok(business, "Logo uploaded")


@router.post("/business/generate-sample-invoice")
def generate_sample_invoice(
    data: SampleInvoiceRequest,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    business = crud.get_business_settings(db, workspace.id)
    pdf = generate_invoice_pdf(sample_invoice(), business, data.template)
    template = (data.template or business.invoice_template).value
    headers = {"Content-Disposition": f'inline; filename="sample_invoice_{template}.pdf"'}
    return Response(content=pdf, media_type="application/pdf", headers=headers)


# -----------------------------
# Generic key/value store
# -----------------------------
@router.get("/", response_model=Envelope[List[SettingRead]])
def read_settings(db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    settings = crud.list_settings(db, workspace.id)
    return ok([crud.setting_payload(s) for s in settings])


@router.put("/{key}", response_model=Envelope[SettingRead])
def upsert_setting(
    key: str,
    data: SettingUpsert,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(require_admin),
):
    key = key.strip()
    if not key:
        raise AppError.bad_request("Setting key is required")
    if crud.is_group_key(key):
        setting = crud.save_group_setting(db, workspace.id, key, data.value)
    else:
        setting = crud.set_setting(db, workspace.id, key, data.value, data.type, data.category)
    db.commit()
    db.refresh(setting)
    return ok(crud.setting_payload(setting), "Setting saved")


@router.get("/{category}", response_model=Envelope[List[SettingRead]])
def read_settings_by_category(
    category: str,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    settings = crud.list_settings(db, workspace.id, category.strip())
    return ok([crud.setting_payload(s) for s in settings])
