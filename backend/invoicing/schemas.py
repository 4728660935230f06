from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class DocumentType(str, Enum):
    INVOICE = 'INVOICE'
    INVOICE_RECEIPT = 'INVOICE_RECEIPT'
    RECEIPT = 'RECEIPT'
    QUOTE = 'QUOTE'


class DocumentStatus(str, Enum):
    DRAFT = 'DRAFT'
    SENT = 'SENT'
    PAID = 'PAID'
    CANCELLED = 'CANCELLED'


class Role(str, Enum):
    ADMIN = 'ADMIN'
    USER = 'USER'
    VIEWER = 'VIEWER'


class RegisterRequest(BaseModel):
    email: str
    password: str = Field(..., min_length=6)
    business_name: str
    business_id: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class ProfileUpdate(BaseModel):
    # fields backed by NOT NULL columns may be omitted but not sent as null
    business_name: str = Field(None, min_length=1)
    business_id: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    logo: Optional[str] = None
    vat_rate: Decimal = Field(None, ge=0, le=100)


class ClientCreate(BaseModel):
    name: str = Field(..., min_length=1)
    business_id: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    notes: Optional[str] = None


class ClientUpdate(BaseModel):
    name: str = Field(None, min_length=1)
    business_id: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    notes: Optional[str] = None


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0)
    includes_vat: bool = False
    unit: str = 'unit'


class ProductUpdate(BaseModel):
    name: str = Field(None, min_length=1)
    description: Optional[str] = None
    price: Decimal = Field(None, ge=0)
    includes_vat: bool = None
    unit: str = Field(None, min_length=1)


class DocumentItem(BaseModel):
    product_id: Optional[str] = None
    description: str
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal
    includes_vat: bool = False


class DocumentCreate(BaseModel):
    client_id: str
    type: DocumentType
    status: DocumentStatus = DocumentStatus.DRAFT
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    items: List[DocumentItem] = Field(..., min_length=1)
    vat_rate: Optional[Decimal] = Field(None, ge=0, le=100)


class DocumentUpdate(BaseModel):
    client_id: Optional[str] = None
    status: Optional[DocumentStatus] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    items: List[DocumentItem] = Field(..., min_length=1)
    vat_rate: Optional[Decimal] = Field(None, ge=0, le=100)


class StatusUpdate(BaseModel):
    status: DocumentStatus
