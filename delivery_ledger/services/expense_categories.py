"""
Expense catalogue.

Expenses are booked against a fixed set of categories, each
with its own subcategories.
"""

from delivery_ledger.exceptions import UnknownCategory

EXPENSE_CATEGORIES: dict[str, tuple[str, ...]] = {
    "Operations / Fleet": (
        "Driver Salaries & Wages",
        "Driver Overtime",
        "Delivery Fees Paid to Subcontractors",
        "Fuel Expense",
        "Vehicle Maintenance & Repairs",
        "Vehicle Insurance",
        "Vehicle Registration & Licensing",
        "Bike/Car Rental",
    ),
    "Staff & HR": (
        "Staff Salaries & Wages",
        "Employee Benefits",
        "Training & Recruitment",
    ),
    "Office & Admin": (
        "Rent",
        "Utilities",
        "Office Supplies",
        "Software Subscriptions",
        "Phone & Communication",
        "Bank Fees & Charges",
        "Professional Fees",
    ),
    "Marketing & Sales": (
        "Advertising & Promotions",
        "Branding & Design",
        "Sponsorships / Community Events",
    ),
    "Operations Support": (
        "Packaging Materials",
        "Uniforms",
    ),
    "Technology & Systems": (
        "Website & Hosting",
        "App Development & Maintenance",
        "IT Support & Repairs",
    ),
    "Financial & Other": (
        "Depreciation",
        "Currency Exchange / Transfer Fees",
        "Miscellaneous Expenses",
    ),
}


def validate_category(category: str | None, subcategory: str | None) -> None:
    """
    Check an expense category pair against the catalogue.

    Both may be omitted. A subcategory without a category is
    rejected, as is one that belongs to a different category.
    """
    if category is None:
        if subcategory is not None:
            raise UnknownCategory("subcategory given without a category")
        return
    if category not in EXPENSE_CATEGORIES:
        raise UnknownCategory(f"Unknown expense category '{category}'")
    if subcategory is not None and subcategory not in EXPENSE_CATEGORIES[category]:
        raise UnknownCategory(
            f"'{subcategory}' is not a subcategory of '{category}'"
        )
