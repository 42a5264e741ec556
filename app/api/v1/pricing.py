# ================================
# PRICING API ROUTES (api/v1/pricing.py)
# ================================

from typing import Optional
from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.dependencies import get_db, security
from app.core.security import user_from_token
from app.services.pricing_service import PricingService
from app.schemas.pricing import (
    PriceCalculationRequest,
    PriceCalculationResponse,
    PromoValidateRequest,
    PromoValidateResponse
)

router = APIRouter()

def _optional_user_id(credentials: Optional[HTTPAuthorizationCredentials]):
    # Quotes are public, a valid token only enables per-user promo limits
    if credentials is None:
        return None
    user = user_from_token(credentials.credentials)
    return user.id if user else None

@router.post("/calculate", response_model=PriceCalculationResponse)
async def calculate_price(
    request: PriceCalculationRequest,
    db: Session = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
):
    """Price quote for a stay, same calculation as used at booking time"""
    calculation = PricingService.calculate_price(
        db,
        unit_id=request.unit_id,
        check_in=request.check_in,
        check_out=request.check_out,
        guests=request.guests,
        promo_code=request.promo_code,
        user_id=_optional_user_id(credentials)
    )
    return PriceCalculationResponse.model_validate(calculation)

@router.post("/promo-codes/validate", response_model=PromoValidateResponse)
async def validate_promo_code(
    request: PromoValidateRequest,
    db: Session = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
):
    """Check a promo code against an amount without applying it"""
    result = PricingService.validate_promo_code(
        db,
        code=request.code,
        unit_id=request.unit_id,
        amount=request.amount,
        nights=request.nights,
        user_id=_optional_user_id(credentials)
    )
    return PromoValidateResponse(
        valid=result.valid,
        message=result.message,
        discount=result.discount,
        code=result.promo_code.code if result.promo_code else None
    )
