"""Courier city mappings: lookup and import from the courier's city list.

Orders carry the city as the customer typed it at checkout. Booking needs the
courier's own city code, found by an exact match on (courier_id, city).
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier
from protean.utils.globals import current_domain

from ordering.courier import get_courier
from ordering.courier.courier import Courier, CourierCityMapping
from ordering.domain import ordering
from ordering.errors import ExternalServiceError, NotFoundError, OperationResult, OrderLifecycleError

logger = structlog.get_logger(__name__)


def lookup_city(courier_id, our_city_name) -> CourierCityMapping | None:
    """Exact lookup of a courier city mapping. No fuzzy or case-folded matching."""
    if not courier_id or not our_city_name:
        return None
    repo = current_domain.repository_for(CourierCityMapping)
    return (
        repo._dao.query.filter(
            courier_id=str(courier_id),
            our_city_name=our_city_name,
        )
        .all()
        .first
    )


@ordering.command(part_of="CourierCityMapping")
class ImportCourierCities:
    """Seed city mappings from the courier's city list."""

    courier_id = Identifier(required=True)


@ordering.command_handler(part_of=CourierCityMapping)
class CityMappingHandler:
    @handle(ImportCourierCities)
    def import_cities(self, command) -> OperationResult:
        try:
            try:
                current_domain.repository_for(Courier).get(command.courier_id)
            except ObjectNotFoundError as exc:
                raise NotFoundError("Courier not found") from exc

            adapter = get_courier()
            try:
                result = adapter.get_cities()
            except Exception as exc:
                raise ExternalServiceError(f"API error: {exc}") from exc
            if not result.success or not result.cities:
                raise ExternalServiceError(result.error or "No cities returned from courier")

            repo = current_domain.repository_for(CourierCityMapping)
            inserted = 0
            for city in result.cities:
                # Existing rows may carry operator corrections; never overwrite them
                if lookup_city(command.courier_id, city.name) is not None:
                    continue
                repo.add(
                    CourierCityMapping(
                        courier_id=command.courier_id,
                        our_city_name=city.name,
                        courier_city_name=city.name,
                        courier_city_code=city.code,
                    )
                )
                inserted += 1

            logger.info(
                "Courier cities imported",
                courier_id=str(command.courier_id),
                received=len(result.cities),
                inserted=inserted,
            )
            return OperationResult(ok=True, data={"count": inserted})
        except OrderLifecycleError as exc:
            return OperationResult.failure(exc)
