"""
Staff notification templates rendered with Jinja2.

Messages are plain text with light Markdown, suitable for chat messengers.
"""

from decimal import Decimal
from typing import Any, Sequence

from jinja2 import DictLoader, Environment, StrictUndefined, TemplateError

from backoffice.core.exceptions import NotificationError
from backoffice.core.logging import get_logger

logger = get_logger(__name__)

NEW_ORDER_TEMPLATE = """\
🆕 *New order #{{ short_id }}*

👤 {{ order.user_fullname }}
📞 {{ order.phone }}
📍 {{ order.address }}
{% if order.delivery_zone %}🗺 Zone: {{ order.delivery_zone }}
{% endif %}
{% for item in items %}
• {{ item.product_name }} × {{ item.quantity }} = {{ item.line_total | money }}
{% endfor %}

💰 *Total: {{ order.total_price | money }}*
💳 {{ payment_label }}
{% if order.notes %}📝 {{ order.notes }}
{% endif %}
"""

LOW_STOCK_TEMPLATE = """\
⚠️ *Low stock: {{ ingredients | length }} ingredient(s)*

{% for ingredient in ingredients %}
• {{ ingredient.name }}: {{ ingredient.current_quantity | qty }} {{ ingredient.unit }} \
(min {{ ingredient.min_threshold | qty }} {{ ingredient.unit }})
{% endfor %}
"""


def _format_money(value: Any) -> str:
    """Group thousands with spaces, e.g. 125000 -> '125 000 sum'."""
    amount = Decimal(str(value)).quantize(Decimal("1"))
    return f"{amount:,}".replace(",", " ") + " sum"


def _format_quantity(value: Any) -> str:
    """Drop trailing zeros, e.g. Decimal("2.500") -> "2.5"."""
    return format(Decimal(str(value)).normalize(), "f")


class NotificationTemplates:
    """Renders the staff notification messages."""

    def __init__(self) -> None:
        self.env = Environment(
            loader=DictLoader(
                {
                    "new_order.txt": NEW_ORDER_TEMPLATE,
                    "low_stock.txt": LOW_STOCK_TEMPLATE,
                }
            ),
            autoescape=False,
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["money"] = _format_money
        self.env.filters["qty"] = _format_quantity

    def _render(self, template_name: str, **context: Any) -> str:
        try:
            return self.env.get_template(template_name).render(**context).strip()
        except TemplateError as e:
            logger.error("Notification template failed", template=template_name, error=str(e))
            raise NotificationError(
                f"Failed to render {template_name}", template=template_name
            ) from e

    def render_new_order(self, order: Any, items: Sequence[Any]) -> str:
        payment = getattr(order.payment_type, "display_name", order.payment_type)
        return self._render(
            "new_order.txt",
            order=order,
            items=items,
            short_id=str(order.id)[:8],
            payment_label=payment,
        )

    def render_low_stock(self, ingredients: Sequence[Any]) -> str:
        return self._render("low_stock.txt", ingredients=ingredients)
