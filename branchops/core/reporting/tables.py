"""Reporting tables loaded from the SharePoint (Odoo) Excel exports.

Each export kind is declared once as a ``ReportFile``; the SQLAlchemy table and
the header -> column transform used by the sync are both derived from it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple

from sqlalchemy import Column, Date, DateTime, Float, Integer, String, Table, Text

from branchops.core.db.base import Base, utc_now

# field kinds understood by the sync transform
STR = "str"
NUM = "num"
DATE = "date"


@dataclass(frozen=True)
class ReportField:
    column: str
    header: str
    kind: str = STR


@dataclass(frozen=True)
class ReportFile:
    kind: str
    file_id_env: str
    table_name: str
    file_name: str
    fields: Tuple[ReportField, ...]

    @property
    def columns(self) -> List[str]:
        return [f.column for f in self.fields]


def _f(column: str, header: str, kind: str = STR) -> ReportField:
    return ReportField(column=column, header=header, kind=kind)


REPORT_FILES: Dict[str, ReportFile] = {
    "sales": ReportFile(
        kind="sales",
        file_id_env="SHAREPOINT_SALES_FILE_ID",
        table_name="odoo_sales",
        file_name="sales.xlsx",
        fields=(
            _f("order_number", "Order Number"),
            _f("order_type", "Order Type"),
            _f("branch", "Branch"),
            _f("date", "Date", DATE),
            _f("client", "Client"),
            _f("items", "Items"),
            _f("qty", "Qty", NUM),
            _f("unit_of_measure", "Unit of Measure"),
            _f("unit_price", "Unit Price", NUM),
            _f("price_subtotal", "Price subtotal", NUM),
            _f("price_subtotal_with_tax", "Price subtotal with tax", NUM),
            _f("invoice_number", "Invoice number"),
            _f("month", "Month"),
            _f("tax", "Tax", NUM),
            _f("category", "Category"),
            _f("product_group", "Group"),
            _f("barcode", "Barcode"),
        ),
    ),
    "inventory": ReportFile(
        kind="inventory",
        file_id_env="SHAREPOINT_INVENTORY_FILE_ID",
        table_name="odoo_inventory",
        file_name="inventory.xlsx",
        fields=(
            _f("product", "Product"),
            _f("location", "Location"),
            _f("lot_serial", "Lot/Serial"),
            _f("number", "Number"),
            _f("removal_date", "Removal Date", DATE),
            _f("inventoried_quantity", "Inventoried Quantity", NUM),
            _f("available_quantity", "Available Quantity", NUM),
            _f("unit_of_measure", "Unit of Measure"),
            _f("value", "Value", NUM),
            _f("company", "Company"),
            _f("date", "Date", DATE),
        ),
    ),
    "manufacturing": ReportFile(
        kind="manufacturing",
        file_id_env="SHAREPOINT_MANUFACTURING_FILE_ID",
        table_name="odoo_manufacturing",
        file_name="manufacturing.xlsx",
        fields=(
            _f("scheduled_date", "Scheduled Date", DATE),
            _f("reference", "Reference"),
            _f("product", "Product"),
            _f("product_unit_of_measure", "Product Unit of Measure"),
            _f("quantity_to_produce", "Quantity To Produce", NUM),
            _f("company", "Company"),
            _f("state", "State"),
            _f("barcode", "Barcode"),
        ),
    ),
    "purchase": ReportFile(
        kind="purchase",
        file_id_env="SHAREPOINT_PURCHASE_FILE_ID",
        table_name="odoo_purchase",
        file_name="purchase.xlsx",
        fields=(
            _f("purchase_date", "Purchase Date", DATE),
            _f("branch", "Branch"),
            _f("items", "Items"),
            _f("categories", "Categories"),
            _f("supplier", "Supplier"),
            _f("qty_purchased", "Qty Purchased", NUM),
            _f("purchase_unit", "Purchase Unit"),
            _f("cost", "Cost", NUM),
            _f("total", "Total", NUM),
            _f("check_number", "Check #"),
            _f("vat", "VAT", NUM),
            _f("month", "Month"),
            _f("barcode", "Barcode"),
        ),
    ),
    "recipe": ReportFile(
        kind="recipe",
        file_id_env="SHAREPOINT_RECIPE_FILE_ID",
        table_name="odoo_recipe",
        file_name="recipe.xlsx",
        fields=(
            _f("category", "Category"),
            _f("product_group", "Group"),
            _f("ingredient_name", "Ingredient Name"),
            _f("quantity", "Quantity", NUM),
            _f("unit", "Unit"),
            _f("unit_cost", "Unit Cost", NUM),
            _f("ingredient_total_cost", "Ingredient Total Cost", NUM),
            _f("recipe_total_cost", "Recipe Total Cost", NUM),
            _f("notes", "Notes"),
            _f("barcode", "Barcode"),
        ),
    ),
    "transfer": ReportFile(
        kind="transfer",
        file_id_env="SHAREPOINT_TRANSFER_FILE_ID",
        table_name="odoo_transfer",
        file_name="transfer.xlsx",
        fields=(
            _f("effective_date", "Effective Date", DATE),
            _f("scheduled_date", "Scheduled Date", DATE),
            _f("from_branch", "From Branch"),
            _f("to_branch", "To Branch"),
            _f("items", "Items"),
            _f("category", "Category"),
            _f("product_group", "Group"),
            _f("quantity", "Quantity", NUM),
            _f("cost", "Cost", NUM),
            _f("barcode", "Barcode"),
        ),
    ),
    "waste": ReportFile(
        kind="waste",
        file_id_env="SHAREPOINT_WASTE_FILE_ID",
        table_name="odoo_waste",
        file_name="waste.xlsx",
        fields=(
            _f("date", "Date", DATE),
            _f("branch", "Branch"),
            _f("item", "Item"),
            _f("category", "Category"),
            _f("product_group", "Group"),
            _f("quantity", "Quantity", NUM),
            _f("unit", "Unit"),
            _f("cost", "Cost", NUM),
            _f("reason", "Reason"),
            _f("barcode", "Barcode"),
        ),
    ),
}


def _column_for(field: ReportField) -> Column:
    if field.kind == NUM:
        return Column(field.column, Float, nullable=False, default=0)
    if field.kind == DATE:
        return Column(field.column, Date, index=True)
    if field.column in ("items", "notes"):
        return Column(field.column, Text)
    return Column(field.column, String(255))


def _build_table(spec: ReportFile) -> Table:
    return Table(
        spec.table_name,
        Base.metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        *[_column_for(f) for f in spec.fields],
        Column("synced_at", DateTime, nullable=False, default=utc_now),
    )


TABLES: Dict[str, Table] = {kind: _build_table(spec) for kind, spec in REPORT_FILES.items()}

odoo_sales = TABLES["sales"]

sync_logs = Table(
    "sync_logs",
    Base.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("file_name", String(255), nullable=False),
    Column("started_at", DateTime, nullable=False, default=utc_now),
    Column("completed_at", DateTime),
    Column("status", String(16), nullable=False, default="running"),
    Column("rows_processed", Integer, nullable=False, default=0),
    Column("error_message", Text),
)
