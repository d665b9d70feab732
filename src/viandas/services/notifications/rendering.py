from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from html import escape
from typing import Iterable, List, Optional, Tuple

from viandas.models import MenuCategory, UserMenuSelection
from viandas.utils.weeks import WeekRange

MISSING_ITEM = "N/A"
EMPTY_OBSERVATION = "---"


@dataclass(frozen=True)
class SummaryRow:
    menu_date: date
    category: str
    item_name: str
    observation: str


def format_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def _category_label(category: object) -> str:
    if isinstance(category, MenuCategory):
        return category.value
    return str(category)


def build_summary_rows(selections: Iterable[UserMenuSelection]) -> List[SummaryRow]:
    """One row per selection; the item is the menu item of the chosen category."""
    rows: List[SummaryRow] = []
    for selection in selections:
        menu = selection.daily_menu
        item_name: Optional[str] = next(
            (item.name for item in menu.items if item.category == selection.selected_category),
            None,
        )
        rows.append(
            SummaryRow(
                menu_date=menu.menu_date,
                category=_category_label(selection.selected_category),
                item_name=item_name or MISSING_ITEM,
                observation=selection.observation or EMPTY_OBSERVATION,
            )
        )
    return rows


def render_reminder(username: str, week: WeekRange, brand_name: str) -> Tuple[str, str]:
    start = format_date(week.start)
    subject = f"¡Es hora de encargar tu menú para la semana del {start} en {brand_name}!"
    body = (
        f"<p>Hola {escape(username)},</p>"
        f"<p>¡El menú para la semana del <strong>{start}</strong> al "
        f"<strong>{format_date(week.end)}</strong> ya está disponible!</p>"
        "<p>Parece que aún no has hecho ninguna selección para esa semana. "
        "¡Ingresa a la plataforma para elegir tus viandas!</p>"
        f"<p>Saludos,<br/>El equipo de {escape(brand_name)}</p>"
    )
    return subject, body


def render_summary(
    username: str,
    week: WeekRange,
    rows: List[SummaryRow],
    brand_name: str,
) -> Tuple[str, str]:
    start, end = format_date(week.start), format_date(week.end)
    subject = f"Confirmación de tu menú para la semana de {brand_name} ({start} - {end})"

    lines = [
        f"<p>Hola {escape(username)},</p>",
        "<p>Aquí tienes el resumen de tus selecciones de menú para la semana del "
        f"<strong>{start} al {end}</strong>:</p>",
        "<table border='1' cellpadding='5' cellspacing='0' style='width:100%; border-collapse: collapse;'>",
        "<tr style='background-color:#f2f2f2;'>"
        "<th>Fecha</th><th>Categoría</th><th>Plato</th><th>Observación</th></tr>",
    ]
    for row in rows:
        lines.append(
            "<tr>"
            f"<td>{format_date(row.menu_date)}</td>"
            f"<td>{escape(row.category)}</td>"
            f"<td>{escape(row.item_name)}</td>"
            f"<td>{escape(row.observation)}</td>"
            "</tr>"
        )
    lines.append("</table>")
    lines.append("<p>¡Que disfrutes tu menú!</p>")
    lines.append(f"<p>Saludos,<br/>El equipo de {escape(brand_name)}</p>")
    return subject, "\n".join(lines)
