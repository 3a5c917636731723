"""
Delivery zones and the delivery fee resolver.

Every neighborhood the storefront serves belongs to exactly one zone and each
zone has a fixed fee. Lookup is a case-insensitive exact match; anything that
is not in the table is charged a fallback fee and flagged as unlisted so the
checkout can warn the customer. There is no fuzzy matching and no I/O.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class DeliveryZoneInfo(BaseModel):
    zone: str
    name: str
    description: str
    fee: float

    model_config = ConfigDict(frozen=True)


class Neighborhood(BaseModel):
    name: str
    zone: str

    model_config = ConfigDict(frozen=True)


class DeliveryFeeResult(BaseModel):
    """Outcome of resolving a neighborhood to a delivery fee."""
    fee: float
    zone_name: Optional[str] = None
    zone_code: Optional[str] = None
    is_unlisted: bool


DEFAULT_FALLBACK_FEE = 20.00

DELIVERY_FEE_WARNING = (
    "A taxa de entrega e calculada automaticamente com base no bairro selecionado."
)

ZONE_ORDER = ("S", "A", "B", "C", "D")

DELIVERY_ZONES: dict[str, DeliveryZoneInfo] = {
    "S": DeliveryZoneInfo(zone="S", name="Super Local", description="Vila da Saude e arredores imediatos", fee=4.00),
    "A": DeliveryZoneInfo(zone="A", name="Muito Proximo", description="Bairros imediatamente ao redor", fee=7.00),
    "B": DeliveryZoneInfo(zone="B", name="Proximo", description="Raio aproximado 2-4 km", fee=10.00),
    "C": DeliveryZoneInfo(zone="C", name="Medio", description="Raio aproximado 4-6 km", fee=15.00),
    "D": DeliveryZoneInfo(zone="D", name="Distante", description="Regioes de maior alcance", fee=20.00),
}

_NEIGHBORHOODS_BY_ZONE: dict[str, tuple[str, ...]] = {
    "S": ("Vila da Saude",),
    "A": (
        "Saude", "Bosque da Saude", "Mirandopolis", "Vila Clementino", "Chacara Inglesa",
        "Planalto Paulista", "Vila Monte Alegre", "Vila Guarani", "Jardim Oriental", "Vila Fachini",
    ),
    "B": (
        "Vila Mariana", "Chacara Klabin", "Vila Gumercindo", "Cursino", "Sacoma",
        "Jardim da Gloria", "Jardim Previdencia", "Vila Moraes", "Ipiranga", "Alto do Ipiranga",
    ),
    "C": (
        "Jabaquara", "Cidade Vargas", "Americanopolis", "Vila Mascote", "Campo Belo",
        "Moema", "Cambuci", "Aclimacao", "Liberdade", "Vila Prudente",
    ),
    "D": (
        "Brooklin", "Santo Amaro", "Bela Vista", "Centro", "Consolacao",
        "Itaim Bibi", "Vila Olimpia", "Pinheiros", "Tatuape", "Mooca",
    ),
}

NEIGHBORHOODS: tuple[Neighborhood, ...] = tuple(
    Neighborhood(name=name, zone=zone)
    for zone in ZONE_ORDER
    for name in _NEIGHBORHOODS_BY_ZONE[zone]
)

# Lowercased name -> neighborhood, built once
_INDEX: dict[str, Neighborhood] = {n.name.lower(): n for n in NEIGHBORHOODS}


def _find(neighborhood_name: Optional[str]) -> Optional[Neighborhood]:
    if not neighborhood_name or not neighborhood_name.strip():
        return None
    return _INDEX.get(neighborhood_name.strip().lower())


def calculate_delivery_fee(
    neighborhood_name: Optional[str],
    fallback_fee: float = DEFAULT_FALLBACK_FEE,
) -> DeliveryFeeResult:
    """
    Resolve a neighborhood name to its delivery fee.

    Total over its input: blank or unknown names resolve to the fallback fee
    with is_unlisted=True instead of raising.
    """
    match = _find(neighborhood_name)
    if match is None:
        return DeliveryFeeResult(fee=fallback_fee, is_unlisted=True)

    zone = DELIVERY_ZONES[match.zone]
    return DeliveryFeeResult(
        fee=zone.fee,
        zone_name=zone.name,
        zone_code=zone.zone,
        is_unlisted=False,
    )


def get_zone_by_neighborhood(neighborhood_name: str) -> Optional[DeliveryZoneInfo]:
    match = _find(neighborhood_name)
    return DELIVERY_ZONES[match.zone] if match else None


def get_neighborhoods_by_zone(zone: str) -> list[Neighborhood]:
    return [n for n in NEIGHBORHOODS if n.zone == zone]


def get_grouped_neighborhoods() -> list[dict]:
    """Zones in display order, each with its info and neighborhoods."""
    return [
        {
            "zone": zone,
            "zone_info": DELIVERY_ZONES[zone].model_dump(),
            "neighborhoods": [n.name for n in get_neighborhoods_by_zone(zone)],
        }
        for zone in ZONE_ORDER
    ]
