"""Wire models for the kiosk backend (PIX) and the local pin pad service.

Provider responses are parsed leniently: every field is optional and
unknown fields are ignored, so a partial body never crashes a rail.
PIX responses also tolerate malformed fields, which are read as missing.
"""
from typing import Optional, Any
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("*", mode="before")
    @classmethod
    def _ids_as_text(cls, v: Any, info):
        # Providers send numeric ids (Mercado Pago payment id, pin pad NSU)
        if info.field_name in {"id", "payment_id", "nsu", "order_id"} and isinstance(v, (int, float)) and not isinstance(v, bool):
            if isinstance(v, float) and v.is_integer():
                v = int(v)
            return str(v)
        return v


class _Tolerant(_Lenient):
    @field_validator("*", mode="wrap")
    @classmethod
    def _malformed_as_missing(cls, v: Any, handler):
        try:
            return handler(v)
        except ValidationError:
            return None


class PixCreateBody(BaseModel):
    """POST /api/payment/create-pix"""
    amount: float
    description: str
    order_id: str = Field(serialization_alias="orderId")
    email: str
    payer_name: str = Field(serialization_alias="payerName")


class PixCreateResponse(_Tolerant):
    id: Optional[str] = None
    payment_id: Optional[str] = Field(default=None, alias="paymentId")
    qr_code_base64: Optional[str] = None
    qr_code_base64_camel: Optional[str] = Field(default=None, alias="qrCodeBase64")
    qr_code: Optional[str] = None
    qr_code_copy_paste: Optional[str] = Field(default=None, alias="qrCodeCopyPaste")
    status: Optional[str] = None

    @property
    def resolved_id(self) -> Optional[str]:
        return self.id or self.payment_id

    @property
    def resolved_qr_image(self) -> Optional[str]:
        return self.qr_code_base64 or self.qr_code_base64_camel

    @property
    def resolved_qr_text(self) -> Optional[str]:
        return self.qr_code or self.qr_code_copy_paste


class PixStatusResponse(_Tolerant):
    id: Optional[str] = None
    payment_id: Optional[str] = Field(default=None, alias="paymentId")
    status: Optional[str] = None
    status_detail: Optional[str] = Field(default=None, alias="statusDetail")
    payment_status: Optional[str] = Field(default=None, alias="paymentStatus")
    amount: Optional[float] = None
    order_id: Optional[str] = Field(default=None, alias="orderId")
    reason: Optional[str] = None

    @property
    def resolved_id(self) -> Optional[str]:
        return self.payment_id or self.id

    @property
    def resolved_detail(self) -> Optional[str]:
        return self.payment_status or self.status_detail or self.reason


class ProviderMessage(_Tolerant):
    message: Optional[str] = None
    error: Optional[str] = None


class PinpadChargeBody(BaseModel):
    """POST {pinpad}/pagamento"""
    valor: int
    tipo: str
    parcelas: int = 1


class PinpadCancelBody(BaseModel):
    """POST {pinpad}/cancelar"""
    nsu: str
    valor: int


class PinpadResponse(_Lenient):
    aprovado: Optional[bool] = None
    nsu: Optional[str] = None
    mensagem: Optional[str] = None


class PinpadStatusResponse(_Lenient):
    online: Optional[bool] = None
    status: Optional[str] = None
    mensagem: Optional[str] = None
