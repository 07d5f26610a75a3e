from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from leadflow.leads.activity import EPOCH, parse_log_timestamp


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LogEntry(CamelModel):
    employee_id: str
    employee_name: str
    timestamp: datetime | None = None
    comment: str


class AssignedEmployee(CamelModel):
    employee_id: str | None = None
    employee_name: str | None = None


class Product(CamelModel):
    product_name: str = ""
    quantity: float = 0
    size: str = ""
    usage: str = ""
    target_price: float = 0
    upload_files: list[str] = Field(default_factory=list)
    remark: str = ""


class DepartmentRecord(CamelModel):
    employee_id: str | None = None
    manager_id: str | None = None
    logs: list[LogEntry] = Field(default_factory=list)


class CustomerServiceRecord(DepartmentRecord):
    customer_name: str = ""
    contact_number: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    marka: str = ""
    remark: str = ""
    products: list[Product] = Field(default_factory=list)


class SourcingRecord(DepartmentRecord):
    product_name: str = ""
    company_name: str = ""
    company_address: str = ""
    supplier_name: str = ""
    supplier_contact_number: str = ""
    product_detail: str = ""
    product_catalogue: str = ""
    product_unit_price: float = 0
    upload_documents: list[str] = Field(default_factory=list)
    remark: str = ""


class ShippingRecord(DepartmentRecord):
    item_name: str = ""
    total_ctn: float = Field(default=0, alias="totalCTN")
    total_cbm: float = Field(default=0, alias="totalCBM")
    total_kg: float = Field(default=0, alias="totalKG")
    total_value: float = 0
    total_pcs: float = Field(default=0, alias="totalPCS")
    hsn_code: str = ""
    shipment_mode: str = ""
    upload_invoice: str = ""
    upload_packing_list: str = ""
    freight_rate: float = 0
    marka: str = ""
    remark: str = ""


class SalesRecord(DepartmentRecord):
    tracking_number: str = ""
    warehouse_receipt: str = ""
    remark: str = ""


class LeadRead(CamelModel):
    id: UUID
    lead_id: str
    current_status: str | None
    current_assigned_employee: AssignedEmployee | None
    customer_service: CustomerServiceRecord | None
    sourcing: SourcingRecord | None
    shipping: ShippingRecord | None
    sales: SalesRecord | None
    logs: list[LogEntry]
    created_at: datetime
    updated_at: datetime
    row_version: int


class LeadCreate(CamelModel):
    type: str = Field(min_length=1)
    customer_info: dict[str, Any] = Field(default_factory=dict)
    products: list[dict[str, Any]] = Field(default_factory=list)
    shipping_info: dict[str, Any] | None = None


class LeadCreateResponse(CamelModel):
    success: bool = True
    data: LeadRead


class SourcingUpdateData(CamelModel):
    company_name: str = Field(min_length=1)
    supplier_name: str = Field(min_length=1)
    product_detail: str = Field(min_length=1)
    product_name: str | None = None
    company_address: str | None = None
    supplier_contact_number: str | None = None
    product_catalogue: str | None = None
    product_unit_price: float | None = None
    upload_documents: list[str] | None = None
    remark: str | None = None


class SourcingUpdateRequest(CamelModel):
    manager_id: str | None = None
    data: SourcingUpdateData


class ShippingUpdateData(CamelModel):
    item_name: str | None = None
    shipment_mode: str | None = None
    freight_rate: float | None = None
    total_ctn: float | None = Field(default=None, alias="totalCTN")
    total_cbm: float | None = Field(default=None, alias="totalCBM")
    total_kg: float | None = Field(default=None, alias="totalKG")
    total_value: float | None = None
    total_pcs: float | None = Field(default=None, alias="totalPCS")
    hsn_code: str | None = None
    upload_invoice: str | None = None
    upload_packing_list: str | None = None
    remark: str | None = None


class ShippingUpdateRequest(CamelModel):
    manager_id: str | None = None
    shipping: ShippingUpdateData


class SalesProduct(CamelModel):
    tracking_number: str = ""
    warehouse_receipt: str = ""
    remark: str = ""


class SalesData(CamelModel):
    products: list[SalesProduct] = Field(default_factory=list)


class SalesUpdateRequest(CamelModel):
    manager_id: str | None = None
    sales_data: SalesData | list[SalesProduct]

    def products(self) -> list[SalesProduct]:
        if isinstance(self.sales_data, list):
            return self.sales_data
        return self.sales_data.products


class DepartmentUpdateResponse(CamelModel):
    success: bool = True
    message: str
    lead: LeadRead


class ForwardActor(CamelModel):
    employee_id: str | None = None
    employee_name: str | None = None


class ForwardRequest(CamelModel):
    lead_ids: list[str] = Field(min_length=1)
    target: str = Field(min_length=1)
    actor: ForwardActor | None = None


class ForwardResponse(CamelModel):
    success: bool
    message: str | None = None


class LeadQueryResponse(CamelModel):
    success: bool = True
    count: int
    leads: list[LeadRead]


class LeadDeleteResponse(CamelModel):
    success: bool = True
    message: str
    files_removed: int


class ActivityEntry(CamelModel):
    employee_id: str | None = None
    employee_name: str | None = None
    timestamp: datetime | None = None
    comment: str | None = None
    department: str

    @field_validator("timestamp", mode="before")
    @classmethod
    def _lenient_timestamp(cls, value: Any) -> Any:
        parsed = parse_log_timestamp(value)
        return None if parsed == EPOCH else parsed


class LeadActivityResponse(CamelModel):
    success: bool = True
    lead_id: str
    count: int
    logs: list[ActivityEntry]


class LogSearchRequest(CamelModel):
    query: str = Field(min_length=1)


class LogSearchResponse(CamelModel):
    id: UUID
    lead_id: str
    current_status: str | None
    current_assigned_employee: AssignedEmployee | None
    customer_service: CustomerServiceRecord | None
    sourcing: SourcingRecord | None
    shipping: ShippingRecord | None
    sales: SalesRecord | None
    logs: list[ActivityEntry]


class ClientSummary(CamelModel):
    marka: str
    customer_name: str
    contact_number: str
    city: str
    state: str
    total_leads: int
    lead_ids: list[str]


class ClientsResponse(CamelModel):
    success: bool = True
    clients: list[ClientSummary]


class ForwardOptionsResponse(CamelModel):
    department: str | None
    options: list[str]
