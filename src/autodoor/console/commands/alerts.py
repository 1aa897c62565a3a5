# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Alert commands."""

from typing import TYPE_CHECKING

from ...models import AlertType
from .base import ArgSpec, CommandResult, command

if TYPE_CHECKING:
    from ...kernel import AutoDoorSystem

_TYPE_CHOICES = ["all"] + [t.value for t in AlertType]
_ACK_FILTERS = {"all": None, "acked": True, "unacked": False}


class AlertCommandsMixin:
    """Mixin providing alert commands."""

    system: "AutoDoorSystem"

    @command(
        "alerts",
        ["a"],
        "List alerts, newest first",
        category="alerts",
        args=[
            ArgSpec("type", "choice", required=False, default="all", choices=_TYPE_CHOICES),
            ArgSpec(
                "acknowledged",
                "choice",
                required=False,
                default="all",
                choices=list(_ACK_FILTERS),
            ),
            ArgSpec("page", "int", required=False, default=1, min_value=1),
        ],
    )
    async def alerts(
        self, alert_type: str = "all", acknowledged: str = "all", page: int = 1
    ) -> CommandResult:
        """List alerts with optional type and acknowledgement filters."""
        result = await self.system.list_alerts(
            alert_type=None if alert_type == "all" else AlertType(alert_type),
            acknowledged=_ACK_FILTERS[acknowledged],
            page=page,
        )
        data = {
            "alerts": [a.to_dict() for a in result.alerts],
            "pagination": {
                "page": result.page,
                "limit": result.limit,
                "total": result.total,
                "pages": result.pages,
            },
        }
        if not result.alerts:
            return CommandResult(True, "No alerts", data)

        lines = [f"Alerts (page {result.page}/{result.pages}, {result.total} total):"]
        for alert in result.alerts:
            mark = " " if alert.acknowledged else "*"
            lines.append(
                f" {mark}#{alert.id} {alert.timestamp:%H:%M:%S} "
                f"[{alert.priority.value}] {alert.type.value}: {alert.message}"
            )
        return CommandResult(True, "\n".join(lines), data)

    @command(
        "ack",
        ["acknowledge"],
        "Acknowledge an alert",
        category="alerts",
        args=[ArgSpec("id", "int", min_value=1, description="Alert id")],
    )
    async def ack(self, alert_id: int) -> CommandResult:
        """Acknowledge an alert by id."""
        changed = await self.system.acknowledge_alert(alert_id)
        if changed:
            return CommandResult(True, f"Alert {alert_id} acknowledged", {"changed": True})
        return CommandResult(
            True, f"Alert {alert_id} was already acknowledged", {"changed": False}
        )
