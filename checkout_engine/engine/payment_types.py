"""Request/result types exchanged between checkout and the payment engine."""

from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any, Optional

from checkout_engine.models.enums import ResultStatus


@dataclass
class ShippingAddress:
    name: str = ""
    address: str = ""
    city: str = ""
    province: str = ""
    postal_code: str = ""


@dataclass
class PaymentRequest:
    """One checkout payment attempt. Built per submission, discarded after dispatch."""

    order_id: str
    order_number: str
    amount: Decimal
    currency: str
    method_id: str
    customer_email: str
    customer_phone: Optional[str] = None
    shipping_address: Optional[ShippingAddress] = None
    order_total: Optional[Decimal] = None  # stored total; amount must equal it when set


@dataclass(frozen=True)
class BankDetails:
    bank_name: str
    account_title: str
    account_number: str
    iban: str
    branch_code: str
    swift_code: str
    reference: str
    instructions: tuple[str, ...] = ()


@dataclass
class PaymentResult:
    """
    Normalized outcome of a dispatch.

    success=False always comes with status=failed and at least one error;
    build failures through PaymentResult.failed() to keep that true.
    """

    success: bool
    status: ResultStatus
    message: str
    method_id: Optional[str] = None
    transaction_id: Optional[str] = None
    errors: list[str] = field(default_factory=list)
    fee: Optional[Decimal] = None
    total_amount: Optional[Decimal] = None
    requires_action: bool = False
    action_type: Optional[str] = None  # "redirect", "verification", "manual_confirmation"
    client_secret: Optional[str] = None
    redirect_url: Optional[str] = None
    redirect_payload: Optional[dict[str, str]] = None
    bank_details: Optional[BankDetails] = None
    error_type: Optional[str] = None  # "validation", "provider", "unexpected", "order_state"

    @classmethod
    def failed(
        cls,
        errors: list[str],
        message: str = "Payment could not be processed",
        method_id: Optional[str] = None,
        error_type: str = "validation",
    ) -> "PaymentResult":
        return cls(
            success=False,
            status=ResultStatus.FAILED,
            message=message,
            method_id=method_id,
            errors=list(errors) or [message],
            error_type=error_type,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        for key in ("fee", "total_amount"):
            if data[key] is not None:
                data[key] = str(data[key])
        if self.bank_details is not None:
            data["bank_details"]["instructions"] = list(self.bank_details.instructions)
        return data
