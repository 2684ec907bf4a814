# This project was developed with assistance from AI tools.
"""Document requirement resolution.

Determines which document categories an application must provide, from
lender product requirement rows. Document type names are normalized to a
canonical category, with legacy names folded into their modern equivalent.
Bank statements are always required regardless of configuration.
"""

import enum
import logging
from dataclasses import dataclass
from decimal import Decimal

from db import Lender, LenderProduct, LenderProductRequirement, ProductStatus
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import InvalidProductError

logger = logging.getLogger(__name__)

COUNTRY_ANY = "BOTH"


class DocumentCategory(str, enum.Enum):
    BANK_STATEMENTS_6_MONTHS = "bank_statements_6_months"
    GOVERNMENT_ID = "government_id"
    VOID_CHEQUE = "void_cheque"
    ARTICLES_OF_INCORPORATION = "articles_of_incorporation"
    BUSINESS_LICENSE = "business_license"
    PERSONAL_NET_WORTH = "personal_net_worth"
    EQUIPMENT_QUOTE = "equipment_quote"
    EQUIPMENT_INVOICE = "equipment_invoice"
    PURCHASE_ORDER = "purchase_order"
    ACCOUNTS_RECEIVABLE_AGING = "accounts_receivable_aging"
    ACCOUNTS_PAYABLE_AGING = "accounts_payable_aging"
    TAX_RETURNS = "tax_returns"
    FINANCIAL_STATEMENTS = "financial_statements"
    LEASE_AGREEMENT = "lease_agreement"
    REAL_ESTATE_SCHEDULE = "real_estate_schedule"


@dataclass(frozen=True)
class UnrecognizedCategory:
    """A document type name that maps to no known category."""

    raw: str

    @property
    def key(self) -> str:
        return self.raw.strip().lower()


# Legacy and plural names folded into canonical categories.
LEGACY_CATEGORY_NAMES: dict[str, DocumentCategory] = {
    "bank_statement": DocumentCategory.BANK_STATEMENTS_6_MONTHS,
    "bank_statements": DocumentCategory.BANK_STATEMENTS_6_MONTHS,
    "id_document": DocumentCategory.GOVERNMENT_ID,
    "void_check": DocumentCategory.VOID_CHEQUE,
    "tax_return": DocumentCategory.TAX_RETURNS,
    "balance_sheet": DocumentCategory.FINANCIAL_STATEMENTS,
}

ALWAYS_REQUIRED: tuple[DocumentCategory, ...] = (DocumentCategory.BANK_STATEMENTS_6_MONTHS,)


def normalize_document_category(raw: str | None) -> DocumentCategory | UnrecognizedCategory:
    """Map a raw document type name to its canonical category."""
    cleaned = (raw or "").strip().lower()
    if cleaned in LEGACY_CATEGORY_NAMES:
        return LEGACY_CATEGORY_NAMES[cleaned]
    try:
        return DocumentCategory(cleaned)
    except ValueError:
        return UnrecognizedCategory(raw or "")


def category_key(category: DocumentCategory | UnrecognizedCategory) -> str:
    """Storage key for a category in the required-document tracker."""
    if isinstance(category, DocumentCategory):
        return category.value
    return category.key


def category_aliases(category: DocumentCategory) -> list[str]:
    """Every document type name that normalizes to ``category``, canonical name first."""
    aliases = [category.value]
    aliases.extend(name for name, target in LEGACY_CATEGORY_NAMES.items() if target is category)
    return aliases


BANK_STATEMENT_ALIASES: tuple[str, ...] = tuple(
    category_aliases(DocumentCategory.BANK_STATEMENTS_6_MONTHS)
)


def is_bank_statement(document_type: str | None) -> bool:
    return normalize_document_category(document_type) is DocumentCategory.BANK_STATEMENTS_6_MONTHS


# ---------------------------------------------------------------------------
# Product categories
# ---------------------------------------------------------------------------


class ProductCategory(str, enum.Enum):
    LOC = "LOC"
    TERM = "TERM"
    FACTORING = "FACTORING"
    EQUIPMENT = "EQUIPMENT"
    MCA = "MCA"


_PRODUCT_CATEGORY_NAMES: dict[str, ProductCategory] = {
    "STANDARD": ProductCategory.LOC,
    "LOC": ProductCategory.LOC,
    "LINE_OF_CREDIT": ProductCategory.LOC,
    "TERM": ProductCategory.TERM,
    "TERM_LOAN": ProductCategory.TERM,
    "FACTORING": ProductCategory.FACTORING,
    "INVOICE_FACTORING": ProductCategory.FACTORING,
    "EQUIPMENT": ProductCategory.EQUIPMENT,
    "EQUIPMENT_FINANCING": ProductCategory.EQUIPMENT,
    "MCA": ProductCategory.MCA,
    "MERCHANT_CASH_ADVANCE": ProductCategory.MCA,
}


def normalize_product_category(raw: str | None) -> ProductCategory | None:
    """Map an application product type to a product category code, or None."""
    if not raw:
        return None
    cleaned = raw.strip().upper().replace("-", "_").replace(" ", "_")
    return _PRODUCT_CATEGORY_NAMES.get(cleaned)


# Starter requirement sets for products that have no configured rows yet.
DEFAULT_REQUIREMENTS_BY_CATEGORY: dict[ProductCategory, tuple[str, ...]] = {
    ProductCategory.LOC: ("bank_statement", "id_document", "void_cheque"),
    ProductCategory.TERM: ("bank_statement", "financial_statements", "tax_return"),
    ProductCategory.FACTORING: ("accounts_receivable_aging", "equipment_invoice", "purchase_order"),
}


def resolve_application_country(metadata: dict | None) -> str | None:
    """Read ``business.address.country`` from application metadata."""
    if not isinstance(metadata, dict):
        return None
    business = metadata.get("business")
    if not isinstance(business, dict):
        return None
    address = business.get("address")
    if not isinstance(address, dict):
        return None
    country = address.get("country")
    if not isinstance(country, str) or not country.strip():
        return None
    return country.strip().upper()


# ---------------------------------------------------------------------------
# Requirement entries
# ---------------------------------------------------------------------------


@dataclass
class RequirementEntry:
    category: DocumentCategory | UnrecognizedCategory
    required: bool = True
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None

    @property
    def key(self) -> str:
        return category_key(self.category)

    @property
    def recognized(self) -> bool:
        return isinstance(self.category, DocumentCategory)


def applies_to_amount(
    min_amount: Decimal | None,
    max_amount: Decimal | None,
    requested_amount: Decimal | None,
) -> bool:
    """Whether an amount-scoped requirement applies. Unknown amounts match everything."""
    if requested_amount is None:
        return True
    if min_amount is not None and requested_amount < min_amount:
        return False
    if max_amount is not None and requested_amount > max_amount:
        return False
    return True


def merge_requirements(entries: list[RequirementEntry]) -> list[RequirementEntry]:
    """Collapse entries that share a category.

    ``required`` is OR'd; amount bounds widen, with an open (None) bound on
    either side winning. First-seen order is kept.
    """
    merged: dict[str, RequirementEntry] = {}
    for entry in entries:
        existing = merged.get(entry.key)
        if existing is None:
            merged[entry.key] = RequirementEntry(
                category=entry.category,
                required=entry.required,
                min_amount=entry.min_amount,
                max_amount=entry.max_amount,
            )
            continue
        existing.required = existing.required or entry.required
        if existing.min_amount is None or entry.min_amount is None:
            existing.min_amount = None
        else:
            existing.min_amount = min(existing.min_amount, entry.min_amount)
        if existing.max_amount is None or entry.max_amount is None:
            existing.max_amount = None
        else:
            existing.max_amount = max(existing.max_amount, entry.max_amount)
    return list(merged.values())


def ensure_bank_statement_floor(entries: list[RequirementEntry]) -> list[RequirementEntry]:
    """Make every ALWAYS_REQUIRED category present and required."""
    result = list(entries)
    for category in ALWAYS_REQUIRED:
        existing = next((e for e in result if e.category is category), None)
        if existing is None:
            result.insert(0, RequirementEntry(category=category, required=True))
        else:
            existing.required = True
    return result


def _to_entries(
    rows: list[LenderProductRequirement],
    requested_amount: Decimal | None,
) -> list[RequirementEntry]:
    return [
        RequirementEntry(
            category=normalize_document_category(row.document_type),
            required=bool(row.required),
            min_amount=row.min_amount,
            max_amount=row.max_amount,
        )
        for row in rows
        if applies_to_amount(row.min_amount, row.max_amount, requested_amount)
    ]


async def _find_matching_product_ids(
    session: AsyncSession,
    category: ProductCategory,
    requested_amount: Decimal | None,
    country: str | None,
) -> list[int]:
    stmt = (
        select(LenderProduct.id)
        .join(Lender, Lender.id == LenderProduct.lender_id)
        .where(
            Lender.is_active.is_(True),
            LenderProduct.status == ProductStatus.ACTIVE.value,
            LenderProduct.category == category.value,
        )
        .order_by(LenderProduct.id)
    )
    if country is not None:
        stmt = stmt.where(LenderProduct.country.in_([country, COUNTRY_ANY]))
    if requested_amount is not None:
        stmt = stmt.where(
            or_(LenderProduct.min_amount.is_(None), LenderProduct.min_amount <= requested_amount),
            or_(LenderProduct.max_amount.is_(None), LenderProduct.max_amount >= requested_amount),
        )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def resolve_requirements(
    session: AsyncSession,
    *,
    lender_product_id: int | None = None,
    product_type: str | None = None,
    requested_amount: Decimal | None = None,
    country: str | None = None,
) -> list[RequirementEntry]:
    """Resolve the document requirements for an application.

    With ``lender_product_id`` only that product's rows are used; a product
    with no matching rows yields just the bank-statement floor. Otherwise
    every active product of an active lender matching the product category,
    the country (or BOTH) and the requested amount contributes.

    Raises:
        InvalidProductError: product type is unknown or no eligible product
            matches it.
    """
    if lender_product_id is not None:
        stmt = select(LenderProductRequirement).where(
            LenderProductRequirement.lender_product_id == lender_product_id,
        )
        rows = list((await session.execute(stmt)).scalars().all())
    else:
        category = normalize_product_category(product_type)
        if category is None:
            logger.warning("Unsupported product type %r", product_type)
            raise InvalidProductError(f"Unsupported product type: {product_type}")
        product_ids = await _find_matching_product_ids(session, category, requested_amount, country)
        if not product_ids:
            logger.warning(
                "No eligible lender products for type=%s country=%s amount=%s",
                category.value,
                country,
                requested_amount,
            )
            raise InvalidProductError(f"No eligible lender products for {category.value}")
        stmt = select(LenderProductRequirement).where(
            LenderProductRequirement.lender_product_id.in_(product_ids),
        )
        rows = list((await session.execute(stmt)).scalars().all())

    entries = ensure_bank_statement_floor(merge_requirements(_to_entries(rows, requested_amount)))
    logger.info(
        "Resolved %d requirements (%d required) for product=%s type=%s",
        len(entries),
        sum(1 for e in entries if e.required),
        lender_product_id,
        product_type,
    )
    return entries


async def seed_default_requirements(
    session: AsyncSession,
    lender_product_id: int,
    product_type: str,
) -> int:
    """Create the starter requirement set for a product that has none.

    Returns the number of rows created (0 when the product already has
    requirements or its category has no starter set).
    """
    category = normalize_product_category(product_type)
    defaults = DEFAULT_REQUIREMENTS_BY_CATEGORY.get(category) if category else None
    if not defaults:
        return 0

    existing = await session.execute(
        select(LenderProductRequirement.id)
        .where(LenderProductRequirement.lender_product_id == lender_product_id)
        .limit(1)
    )
    if existing.scalar_one_or_none() is not None:
        return 0

    for document_type in defaults:
        session.add(
            LenderProductRequirement(
                lender_product_id=lender_product_id,
                document_type=document_type,
                required=True,
            )
        )
    await session.flush()
    logger.info(
        "Seeded %d default requirements for lender product %s (%s)",
        len(defaults),
        lender_product_id,
        category.value,
    )
    return len(defaults)
