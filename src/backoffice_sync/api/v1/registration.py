"""Registration pre-validation endpoints.

Called by the storefront before it creates a local account, once from the
registration page and once from checkout (where the fields carry billing
names). A 422 answer means the account must not be created.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from backoffice_sync.api.deps import get_referral_capture, get_registration_validator
from backoffice_sync.services import ReferralCapture, RegistrationValidator
from backoffice_sync.services.registration import RegistrationCandidate, ValidationResult

router = APIRouter()

ValidatorDep = Annotated[RegistrationValidator, Depends(get_registration_validator)]
ReferralDep = Annotated[ReferralCapture, Depends(get_referral_capture)]


# =============================================================================
# Models
# =============================================================================


class RegistrationRequest(BaseModel):
    """Fields of the standalone registration form."""

    username: str = ""
    email: str = ""
    password: str = ""
    referral: str = ""
    first_name: str = ""
    last_name: str = ""
    phone: str = ""

    def to_candidate(self) -> RegistrationCandidate:
        return RegistrationCandidate(
            email=self.email,
            password=self.password,
            username=self.username,
            referral=self.referral,
            first_name=self.first_name,
            last_name=self.last_name,
            phone=self.phone,
        )


class CheckoutRegistrationRequest(BaseModel):
    """Account fields of the checkout form."""

    account_username: str = ""
    billing_email: str = ""
    account_password: str = ""
    referral: str = ""
    billing_first_name: str = ""
    billing_last_name: str = ""
    billing_phone: str = ""

    def to_candidate(self) -> RegistrationCandidate:
        return RegistrationCandidate(
            email=self.billing_email,
            password=self.account_password,
            username=self.account_username,
            referral=self.referral,
            first_name=self.billing_first_name,
            last_name=self.billing_last_name,
            phone=self.billing_phone,
        )


class FieldErrorModel(BaseModel):
    field: str
    message: str


class ValidationResponse(BaseModel):
    valid: bool
    username: str = ""
    errors: list[FieldErrorModel] = []


# =============================================================================
# Endpoints
# =============================================================================


async def _validate(
    request: Request,
    candidate: RegistrationCandidate,
    validator: RegistrationValidator,
    referrals: ReferralCapture,
) -> JSONResponse:
    if not candidate.referral.strip():
        candidate.referral = await referrals.current(request) or ""

    result: ValidationResult = await validator.validate(candidate)
    body = ValidationResponse(
        valid=result.ok,
        username=result.username,
        errors=[FieldErrorModel(field=e.field, message=e.message) for e in result.errors],
    )
    return JSONResponse(status_code=200 if result.ok else 422, content=body.model_dump())


@router.post("/registration/validate", response_model=ValidationResponse)
async def validate_registration(
    request: Request,
    form: RegistrationRequest,
    validator: ValidatorDep,
    referrals: ReferralDep,
) -> JSONResponse:
    return await _validate(request, form.to_candidate(), validator, referrals)


@router.post("/checkout/validate", response_model=ValidationResponse)
async def validate_checkout_registration(
    request: Request,
    form: CheckoutRegistrationRequest,
    validator: ValidatorDep,
    referrals: ReferralDep,
) -> JSONResponse:
    return await _validate(request, form.to_candidate(), validator, referrals)
