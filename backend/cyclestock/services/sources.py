# Overview: Typed accessors over the raw transaction streams; the persistence contract the engine reads and writes through.

from __future__ import annotations

import functools
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import ConflictError, NotFoundError, UpstreamError
from ..extensions import db
from ..models import (
    Category,
    Employee,
    PaymentMethod,
    Product,
    ReturnAndReplacement,
    Sale,
    SaleDetail,
    StockAdjustment,
    StockAdjustmentDetail,
    Stockout,
    StockoutDetail,
    Supplier,
    Supply,
    SupplyDetail,
)
from ..models.sales import SALE_STATUS_VOIDED
from ..models.supplies import SUPPLY_STATUS_RECEIVED
from .concurrency import lock_for_update
"""
Source adapter invariants:

- Every stream is append-only from the engine's point of view. The only
  in-place updates are lifecycle fields on returns and supplies.
- Readers never cache: each call hits the database, so a post is visible to
  the next read (read-after-write).
- Database failures surface as UpstreamError carrying the driver message
  verbatim; nothing here retries.
- Ordering is deterministic (by primary key) so downstream folds and pages
  are reproducible.
"""


def _upstream(fn):
    """Translate driver/transport failures into UpstreamError."""

    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        try:
            return fn(self, *args, **kwargs)
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise UpstreamError(str(getattr(exc, "orig", None) or exc)) from exc

    return wrapper


class TransactionStore:
    """
    Query/command surface over the raw supply, sale, stockout, adjustment and
    return records.
    """

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    @_upstream
    def find_product(self, product_id: int) -> Product | None:
        return self.session.query(Product).filter_by(id=product_id).first()

    def get_product(self, product_id: int) -> Product:
        product = self.find_product(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        return product

    @_upstream
    def list_products(self, *, active_only: bool = True) -> list[Product]:
        q = self.session.query(Product)
        if active_only:
            q = q.filter(Product.is_active.is_(True))
        return q.order_by(Product.id.asc()).all()

    @_upstream
    def get_supplier(self, supplier_id: int | None) -> Supplier | None:
        if supplier_id is None:
            return None
        return self.session.query(Supplier).filter_by(id=supplier_id).first()

    @_upstream
    def catalog_labels(self) -> dict[str, dict]:
        """Display names used by report dimensions."""
        return {
            "category": {c.code: c.name for c in self.session.query(Category).all()},
            "staff": {e.id: e.display_name for e in self.session.query(Employee).all()},
            "payment_method": {m.code: m.name for m in self.session.query(PaymentMethod).all()},
        }

    # ------------------------------------------------------------------
    # Supplies
    # ------------------------------------------------------------------

    @_upstream
    def list_supplies(self, *, status: str | None = None) -> list[Supply]:
        q = self.session.query(Supply)
        if status is not None:
            q = q.filter(Supply.status == status)
        return q.order_by(Supply.id.asc()).all()

    @_upstream
    def get_supply(self, supply_id: int | None) -> Supply | None:
        if supply_id is None:
            return None
        return self.session.query(Supply).filter_by(id=supply_id).first()

    @_upstream
    def list_supply_lines(self, supply_id: int) -> list[SupplyDetail]:
        return (
            self.session.query(SupplyDetail)
            .filter(SupplyDetail.supply_id == supply_id)
            .order_by(SupplyDetail.id.asc())
            .all()
        )

    @_upstream
    def list_all_supply_lines(self, *, product_id: int | None = None) -> list[SupplyDetail]:
        q = self.session.query(SupplyDetail)
        if product_id is not None:
            q = q.filter(SupplyDetail.product_id == product_id)
        return q.order_by(SupplyDetail.supply_id.asc(), SupplyDetail.id.asc()).all()

    @_upstream
    def create_supply(
        self,
        *,
        supplier_id: int | None,
        supply_date: datetime,
        status: str,
        lines: list[dict],
        remarks: str | None = None,
    ) -> Supply:
        supply = Supply(
            supplier_id=supplier_id,
            supply_date=supply_date,
            status=status,
            remarks=remarks,
        )
        self.session.add(supply)
        self.session.flush()
        for line in lines:
            self.session.add(
                SupplyDetail(
                    supply_id=supply.id,
                    product_id=line["product_id"],
                    quantity_supplied=line["quantity"],
                    unit_cost_cents=line.get("unit_cost_cents"),
                )
            )
        self.session.commit()
        return supply

    @_upstream
    def mark_supply_received(self, supply: Supply, *, received_at: datetime) -> Supply:
        supply.status = SUPPLY_STATUS_RECEIVED
        # Stock arrives when received, not when ordered
        supply.supply_date = received_at
        self.session.commit()
        return supply

    # ------------------------------------------------------------------
    # Stockouts
    # ------------------------------------------------------------------

    @_upstream
    def list_stockouts(self) -> list[Stockout]:
        return self.session.query(Stockout).order_by(Stockout.id.asc()).all()

    @_upstream
    def list_stockout_lines(self, stockout_id: int) -> list[StockoutDetail]:
        return (
            self.session.query(StockoutDetail)
            .filter(StockoutDetail.stockout_id == stockout_id)
            .order_by(StockoutDetail.id.asc())
            .all()
        )

    @_upstream
    def list_all_stockout_lines(self) -> list[StockoutDetail]:
        return (
            self.session.query(StockoutDetail)
            .order_by(StockoutDetail.stockout_id.asc(), StockoutDetail.id.asc())
            .all()
        )

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    @_upstream
    def list_sales(
        self,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        include_voided: bool = False,
    ) -> list[Sale]:
        """Sales with start <= sale_date < end (either bound optional)."""
        q = self.session.query(Sale)
        if not include_voided:
            q = q.filter(Sale.status != SALE_STATUS_VOIDED)
        if start is not None:
            q = q.filter(Sale.sale_date >= start)
        if end is not None:
            q = q.filter(Sale.sale_date < end)
        return q.order_by(Sale.id.asc()).all()

    @_upstream
    def get_sale(self, sale_id: int) -> Sale | None:
        return self.session.query(Sale).filter_by(id=sale_id).first()

    @_upstream
    def list_sale_lines(self, sale_id: int) -> list[SaleDetail]:
        return (
            self.session.query(SaleDetail)
            .filter(SaleDetail.sale_id == sale_id)
            .order_by(SaleDetail.id.asc())
            .all()
        )

    @_upstream
    def list_all_sale_lines(self, *, product_id: int | None = None) -> list[SaleDetail]:
        q = self.session.query(SaleDetail)
        if product_id is not None:
            q = q.filter(SaleDetail.product_id == product_id)
        return q.order_by(SaleDetail.sale_id.asc(), SaleDetail.id.asc()).all()

    @_upstream
    def get_sale_detail(self, sale_detail_id: int | None) -> SaleDetail | None:
        if sale_detail_id is None:
            return None
        return self.session.query(SaleDetail).filter_by(id=sale_detail_id).first()

    # ------------------------------------------------------------------
    # Adjustments
    # ------------------------------------------------------------------

    @_upstream
    def list_adjustments(
        self,
        *,
        product_id: int | None = None,
        page: int | None = None,
        page_size: int | None = None,
    ) -> list[StockAdjustment]:
        q = self.session.query(StockAdjustment)
        if product_id is not None:
            q = q.filter(
                StockAdjustment.id.in_(
                    self.session.query(StockAdjustmentDetail.adjustment_id).filter(
                        StockAdjustmentDetail.product_id == product_id
                    )
                )
            )
        q = q.order_by(StockAdjustment.id.asc())
        if page is not None and page_size is not None:
            q = q.order_by(None).order_by(
                StockAdjustment.transaction_date.desc(), StockAdjustment.id.desc()
            )
            q = q.offset((page - 1) * page_size).limit(page_size)
        return q.all()

    @_upstream
    def count_adjustments(self, *, product_id: int | None = None) -> int:
        q = self.session.query(func.count(StockAdjustment.id))
        if product_id is not None:
            q = q.filter(
                StockAdjustment.id.in_(
                    self.session.query(StockAdjustmentDetail.adjustment_id).filter(
                        StockAdjustmentDetail.product_id == product_id
                    )
                )
            )
        return int(q.scalar() or 0)

    @_upstream
    def find_adjustment_by_request_id(self, client_request_id: str) -> StockAdjustment | None:
        return (
            self.session.query(StockAdjustment)
            .filter_by(client_request_id=client_request_id)
            .first()
        )

    @_upstream
    def create_adjustment(self, request) -> StockAdjustment:
        """
        Persist one adjustment header with its detail lines in one commit.

        Raises ConflictError when client_request_id was already used.
        """
        adjustment = StockAdjustment(
            client_request_id=request.client_request_id,
            adjustment_type=request.adjustment_type,
            transaction_date=request.transaction_date,
            remarks=request.remarks,
        )
        try:
            self.session.add(adjustment)
            self.session.flush()
            for detail in request.details:
                self.session.add(
                    StockAdjustmentDetail(
                        adjustment_id=adjustment.id,
                        product_id=detail.product_id,
                        quantity=detail.quantity,
                    )
                )
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            existing = self.find_adjustment_by_request_id(request.client_request_id)
            if existing is None:
                raise UpstreamError(str(exc.orig)) from exc
            raise ConflictError(
                f"Adjustment request {request.client_request_id} was already applied",
                existing_id=existing.id,
            ) from exc
        return adjustment

    # ------------------------------------------------------------------
    # Returns
    # ------------------------------------------------------------------

    @_upstream
    def get_return(self, return_id: int, *, lock: bool = False) -> ReturnAndReplacement | None:
        q = self.session.query(ReturnAndReplacement).filter_by(id=return_id)
        if lock:
            q = lock_for_update(q)
        return q.first()

    @_upstream
    def list_returns(self, *, status: str | None = None) -> list[ReturnAndReplacement]:
        q = self.session.query(ReturnAndReplacement)
        if status is not None:
            q = q.filter(ReturnAndReplacement.return_status == status)
        return q.order_by(ReturnAndReplacement.id.asc()).all()

    @_upstream
    def quantity_claimed(self, sale_detail_id: int, *, excluding_status: str) -> int:
        """Units of a sold line already covered by returns not in excluding_status."""
        q = self.session.query(
            func.coalesce(func.sum(ReturnAndReplacement.quantity), 0)
        ).filter(
            ReturnAndReplacement.sale_detail_id == sale_detail_id,
            ReturnAndReplacement.return_status != excluding_status,
        )
        return int(q.scalar() or 0)

    def create_return(self, **fields) -> ReturnAndReplacement:
        return self.create_returns([fields])[0]

    @_upstream
    def create_returns(self, rows: list[dict]) -> list[ReturnAndReplacement]:
        """Insert several return records in a single commit (all or nothing)."""
        records = [ReturnAndReplacement(**fields) for fields in rows]
        self.session.add_all(records)
        self.session.commit()
        return records

    @_upstream
    def save_return(self, record: ReturnAndReplacement) -> ReturnAndReplacement:
        """Commit lifecycle changes made to a return record."""
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError(f"Return {record.id} posting key already used") from exc
        return record

    # ------------------------------------------------------------------
    # Convenience aggregate
    # ------------------------------------------------------------------

    @_upstream
    def get_quantity_on_hand(self, product_id: int) -> int:
        """
        Precomputed QOH straight from SQL aggregates.

        Convenience only: the movement projection is authoritative and this
        figure may lag an in-flight adjustment. Header-only stockouts and
        replacement issues are included; malformed rows are not filtered the
        way the normalizer filters them.
        """
        s = self.session
        supplied = (
            s.query(func.coalesce(func.sum(SupplyDetail.quantity_supplied), 0))
            .join(Supply, Supply.id == SupplyDetail.supply_id)
            .filter(SupplyDetail.product_id == product_id, Supply.status == SUPPLY_STATUS_RECEIVED)
            .scalar()
        )
        sold = (
            s.query(func.coalesce(func.sum(SaleDetail.quantity_sold), 0))
            .join(Sale, Sale.id == SaleDetail.sale_id)
            .filter(SaleDetail.product_id == product_id, Sale.status != SALE_STATUS_VOIDED)
            .scalar()
        )
        removed_lines = (
            s.query(func.coalesce(func.sum(StockoutDetail.quantity_removed), 0))
            .filter(StockoutDetail.product_id == product_id)
            .scalar()
        )
        removed_headers = (
            s.query(func.coalesce(func.sum(Stockout.quantity_removed), 0))
            .filter(
                Stockout.product_id == product_id,
                ~Stockout.id.in_(s.query(StockoutDetail.stockout_id)),
            )
            .scalar()
        )
        adjusted = (
            s.query(func.coalesce(func.sum(StockAdjustmentDetail.quantity), 0))
            .filter(StockAdjustmentDetail.product_id == product_id)
            .scalar()
        )
        returned = (
            s.query(func.coalesce(func.sum(ReturnAndReplacement.quantity), 0))
            .join(SaleDetail, SaleDetail.id == ReturnAndReplacement.sale_detail_id)
            .filter(SaleDetail.product_id == product_id, ReturnAndReplacement.return_status == "POST")
            .scalar()
        )
        replaced = (
            s.query(func.coalesce(func.sum(ReturnAndReplacement.quantity), 0))
            .filter(
                ReturnAndReplacement.replacement_product_id == product_id,
                ReturnAndReplacement.return_status == "POST",
            )
            .scalar()
        )
        return int(
            (supplied or 0)
            - (sold or 0)
            - (removed_lines or 0)
            - (removed_headers or 0)
            + (adjusted or 0)
            + (returned or 0)
            - (replaced or 0)
        )
