import re
import secrets

VOUCHER_PATTERN = re.compile(r"^VCH-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{4}$")
INVOICE_PATTERN = re.compile(r"^INV_[0-9A-F]{12}$")


class ReferenceGenerator:
    """
    Issues voucher codes and invoice ids. Uniqueness is not checked here; the
    order repository's unique constraints reject the rare collision and the
    ledger regenerates.
    """

    def voucher_code(self) -> str:
        raw = secrets.token_hex(6).upper()
        return f"VCH-{raw[0:4]}-{raw[4:8]}-{raw[8:12]}"

    def invoice_id(self) -> str:
        return f"INV_{secrets.token_hex(6).upper()}"
