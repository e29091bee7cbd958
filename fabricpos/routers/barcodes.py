# fabricpos/routers/barcodes.py
from fastapi import APIRouter, Depends
from fastapi.responses import Response

from fabricpos.models import User
from fabricpos.schemas.barcodes import BarcodeFormat, BarcodeRequest, DataUrlResponse, LabelRequest
from fabricpos.schemas.common import Envelope, ok
from fabricpos.security import get_current_user
from fabricpos.utils import barcodes

router = APIRouter()


@router.get("/formats", response_model=Envelope[list])
def list_formats(current_user: User = Depends(get_current_user)):
    return ok([
        {"format": fmt.value, "description": barcodes.FORMAT_DESCRIPTIONS[fmt]} for fmt in BarcodeFormat
    ])


@router.post("/generate")
def generate_barcode(req: BarcodeRequest, current_user: User = Depends(get_current_user)):
    png = barcodes.generate_png(req.text, req.format, req.width, req.height, req.scale, req.include_text)
    return Response(content=png, media_type="image/png")


@router.post("/generate/svg")
def generate_barcode_svg(req: BarcodeRequest, current_user: User = Depends(get_current_user)):
    svg = barcodes.generate_svg(req.text, req.format, req.width, req.height, req.scale, req.include_text)
    return Response(content=svg, media_type="image/svg+xml")


@router.post("/generate/dataurl", response_model=Envelope[DataUrlResponse])
def generate_barcode_data_url(req: BarcodeRequest, current_user: User = Depends(get_current_user)):
    png = barcodes.generate_png(req.text, req.format, req.width, req.height, req.scale, req.include_text)
    return ok({"format": req.format, "data_url": barcodes.to_data_url(png)})


@router.post("/generate/label")
def generate_label(req: LabelRequest, current_user: User = Depends(get_current_user)):
    png = barcodes.generate_label(
        req.text,
        req.format,
        title=req.title,
        subtitle=req.text if req.title else None,
        price=req.price,
        currency_symbol=req.currency_symbol,
    )
    return Response(content=png, media_type="image/png")
