from __future__ import annotations

from decimal import Decimal

import pytest

from mapexport.core.projection import BoundsProjection, GeoBounds


@pytest.fixture
def bounds() -> GeoBounds:
    return GeoBounds(
        minlon=Decimal("35.753054"),
        minlat=Decimal("34.360353"),
        maxlon=Decimal("35.949310"),
        maxlat=Decimal("34.522050"),
    )


def test_origin_maps_to_bounds_center(bounds: GeoBounds) -> None:
    proj = BoundsProjection(bounds)
    lon, lat = proj((0.0, 123.0, 0.0))
    assert lon == Decimal("35.851182")
    assert lat == Decimal("34.4412015")


def test_world_edge_maps_to_bounds_edge(bounds: GeoBounds) -> None:
    proj = BoundsProjection(bounds, world_size=17280.0)
    assert proj((8640.0, 0.0, 8640.0)) == (Decimal("35.949310"), Decimal("34.522050"))
    assert proj((-8640.0, 0.0, -8640.0)) == (Decimal("35.753054"), Decimal("34.360353"))


def test_scale_widens_range(bounds: GeoBounds) -> None:
    lon1, _ = BoundsProjection(bounds, scale=1.0)((8640.0, 0.0, 0.0))
    lon2, _ = BoundsProjection(bounds, scale=2.0)((8640.0, 0.0, 0.0))
    center = Decimal("35.851182")
    assert lon2 - center == 2 * (lon1 - center)


def test_output_is_quantized_to_seven_digits(bounds: GeoBounds) -> None:
    lon, lat = BoundsProjection(bounds)((1.2345, 0.0, -6.789))
    assert lon.as_tuple().exponent == -7
    assert lat.as_tuple().exponent == -7


def test_invalid_bounds_and_scale_raise(bounds: GeoBounds) -> None:
    with pytest.raises(ValueError):
        GeoBounds(Decimal(1), Decimal(0), Decimal(1), Decimal(1))
    with pytest.raises(ValueError):
        BoundsProjection(bounds, scale=0.0)
