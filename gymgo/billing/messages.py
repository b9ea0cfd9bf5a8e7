"""User-facing (Spanish) limit messages and usage display helpers."""

from __future__ import annotations

from datetime import date

from gymgo.billing.plans import UNLIMITED
from gymgo.types import MeteredResource

ORGANIZATION_NOT_FOUND = "Organización no encontrada"
VERIFY_LIMITS_ERROR = "Error al verificar límites"
VERIFY_STORAGE_ERROR = "Error al verificar límites de almacenamiento"
VERIFY_API_ERROR = "Error al verificar límites de API"
API_NOT_IN_PLAN = "El acceso a la API no está disponible en tu plan."
API_NOT_IN_PLAN_UPGRADE = (
    "El acceso a la API no está disponible en tu plan. Actualiza al plan Pro."
)
API_ACCESS_DENIED = (
    "El acceso a la API no está disponible en tu plan. Actualiza al plan Pro o superior."
)

LIMIT_TYPE_LABELS: dict[str, str] = {
    MeteredResource.MEMBERS: "miembros",
    MeteredResource.ADMIN_USERS: "usuarios del sistema",
    MeteredResource.TRAINERS: "entrenadores",
    MeteredResource.CLASSES: "clases",
    MeteredResource.LOCATIONS: "ubicaciones",
    MeteredResource.AI_REQUESTS: "consultas de IA",
    MeteredResource.EMAILS: "correos electrónicos",
    MeteredResource.WHATSAPP: "mensajes de WhatsApp",
    MeteredResource.STORAGE: "almacenamiento",
    MeteredResource.FILE_SIZE: "tamaño de archivo",
    "push_notifications": "notificaciones push",
}

_MONTHS_ES = (
    "enero",
    "febrero",
    "marzo",
    "abril",
    "mayo",
    "junio",
    "julio",
    "agosto",
    "septiembre",
    "octubre",
    "noviembre",
    "diciembre",
)


def count_limit_reached(limit: int, noun: str) -> str:
    return (
        f"Has alcanzado el límite de {limit} {noun} de tu plan. "
        "Actualiza tu plan para agregar más."
    )


def monthly_limit_reached(limit: int, noun: str) -> str:
    return f"Has alcanzado el límite de {limit} {noun}/mes de tu plan."


def ai_limit_reached(limit: int, reset_date: str) -> str:
    return (
        f"Has alcanzado el límite de {limit} consultas AI/mes de tu plan. "
        f"Se reinicia el {reset_date}."
    )


def storage_limit_reached(limit_gb: int) -> str:
    return f"Has alcanzado el límite de {limit_gb} GB de almacenamiento de tu plan."


def daily_api_limit_reached(limit: int) -> str:
    return f"Has alcanzado el límite de {limit} requests/día de tu plan."


def file_too_large(max_size_mb: int) -> str:
    return f"El archivo excede el límite de {max_size_mb} MB de tu plan."


def feature_unavailable(feature: str) -> str:
    return (
        f'La función "{feature}" no está disponible en tu plan. '
        "Actualiza a un plan superior."
    )


def first_of_next_month(today: date) -> date:
    if today.month == 12:
        return date(today.year + 1, 1, 1)
    return date(today.year, today.month + 1, 1)


def format_reset_date(day: date) -> str:
    """Long Spanish day/month, e.g. ``1 de noviembre``."""
    return f"{day.day} de {_MONTHS_ES[day.month - 1]}"


def format_limit_message(resource_name: str, current: int, limit: int) -> str:
    if limit == UNLIMITED:
        return f"{resource_name}: Ilimitado"
    return f"{resource_name}: {current}/{limit}"


def format_usage(current: int, limit: int) -> str:
    if limit == UNLIMITED:
        return f"{current} / Ilimitado"
    return f"{current} / {limit}"


def usage_percentage(current: int, limit: int) -> int:
    """Usage as a whole percentage capped at 100; unlimited is always 0."""
    if limit == UNLIMITED:
        return 0
    if limit == 0:
        return 100
    return min(100, round(current / limit * 100))
