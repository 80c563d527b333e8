from medlegal.services.bills.bill_materializer import (
    BillMaterializer,
    MaterializationResult,
    normalize_candidate,
    parse_amount,
)

__all__ = ["BillMaterializer", "MaterializationResult", "normalize_candidate", "parse_amount"]
