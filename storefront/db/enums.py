# storefront/db/enums.py
from __future__ import annotations

import enum


class CodeKind(str, enum.Enum):
    download = "download"
    # зарезервированы, в редимпшене пока не участвуют
    discount = "discount"
    product_unlock = "product_unlock"


class CodeType(str, enum.Enum):
    master = "master"
    product = "product"
