from decimal import Decimal

from estate_geo.domain.value_objects import GeoPoint
from estate_geo.dto.mappers import map_clusters, map_matches
from estate_geo.repositories.interfaces import ClusterCell, PropertyMatch


def test_map_matches_rounds_distance_and_counts_items() -> None:
    dto = map_matches([PropertyMatch(id=3, distance_km=1.23456789), PropertyMatch(id=8)])

    assert dto.total == 2
    assert dto.items[0].id == 3
    assert dto.items[0].distance_km == 1.234568
    assert dto.items[1].distance_km is None


def test_map_clusters_flattens_centroid_and_prices() -> None:
    cell = ClusterCell(
        centroid=GeoPoint(lat=55.75, lng=37.61),
        count=2,
        min_price=Decimal("100.00"),
        max_price=Decimal("300.00"),
        avg_price=Decimal("200.00"),
        member_ids=[4, 9],
    )

    dto = map_clusters([cell], zoom=13)

    assert dto.zoom == 13
    assert dto.total_properties == 2
    [out] = dto.cells
    assert (out.lat, out.lng) == (55.75, 37.61)
    assert (out.min_price, out.max_price, out.avg_price) == (100.0, 300.0, 200.0)
    assert out.property_ids == [4, 9]
