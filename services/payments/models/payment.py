"""Pydantic models for payments"""
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime

from services.registration.models.registration import TicketResponse


class CreateOrderRequest(BaseModel):
    amount: int = Field(..., gt=0, description="Amount in paise")
    currency: str = "INR"
    organizer_upi_id: Optional[str] = None
    registration_id: Optional[str] = None


class OrderResponse(BaseModel):
    success: bool = True
    key_id: Optional[str] = None
    payment_id: str
    order: Dict[str, Any]


class VerifyPaymentRequest(BaseModel):
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None


class VerifyPaymentResponse(BaseModel):
    success: bool
    message: str
    registration_id: Optional[str] = None
    ticket: Optional[TicketResponse] = None


class PaymentResponse(BaseModel):
    id: str
    registration_id: Optional[str] = None
    gateway_order_id: str
    gateway_payment_id: Optional[str] = None
    amount: int
    currency: str
    status: str
    organizer_upi_id: Optional[str] = None
    payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
