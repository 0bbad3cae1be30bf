import enum


class PriceType(enum.Enum):
    """Тарифы стажа"""
    normal = "normal"
    reduced = "reduced"
    local = "local"
    local_reduced = "local_reduced"

    @property
    def is_local(self) -> bool:
        return self in (PriceType.local, PriceType.local_reduced)

    @property
    def is_reduced(self) -> bool:
        return self in (PriceType.reduced, PriceType.local_reduced)
