"""
Geo lookup of players around a point.

The player request broker depends only on ``find_within_radius``; swap in a
PostGIS-backed locator by providing the same method.
"""

from typing import Iterable, List, Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from footy.database.models import Player
from footy.utils.geo_utils import bounding_box, calculate_distance_meters


class HaversinePlayerLocator:
    """
    Bounding-box prefilter in SQL, exact haversine check in Python.

    Players without stored coordinates are never returned.
    """

    async def find_within_radius(
        self,
        session: AsyncSession,
        lat: float,
        lng: float,
        meters: float,
        exclude_ids: Optional[Iterable[int]] = None,
    ) -> List[Player]:
        min_lat, max_lat, min_lng, max_lng = bounding_box(lat, lng, meters)
        q = select(Player).where(
            and_(
                Player.latitude.isnot(None),
                Player.longitude.isnot(None),
                Player.latitude.between(min_lat, max_lat),
                Player.longitude.between(min_lng, max_lng),
            )
        )
        exclude_ids = set(exclude_ids or ())
        if exclude_ids:
            q = q.where(Player.id.notin_(exclude_ids))

        result = await session.execute(q)
        return [
            p
            for p in result.scalars().all()
            if calculate_distance_meters(lat, lng, p.latitude, p.longitude) <= meters
        ]
