"""
Plantillas HTML de los correos transaccionales.

Todos los valores provenientes del cliente se escapan antes de insertarse.
"""
from __future__ import annotations

from html import escape
from typing import Iterable, Optional

from domain.order.entity import Order


BRAND = "Maka Tatuajes"
ACCENT = "#111111"


def format_clp(amount: int) -> str:
    """50000 -> "$50.000" """
    return "$" + f"{amount:,}".replace(",", ".")


def _rows(items: Iterable[tuple[str, Optional[str]]]) -> str:
    out = []
    for label, value in items:
        if value in (None, ""):
            continue
        out.append(
            f'<tr><td style="padding:6px 12px;color:#555;">{escape(label)}</td>'
            f'<td style="padding:6px 12px;font-weight:600;">{escape(str(value))}</td></tr>'
        )
    return "".join(out)


def _layout(title: str, intro: str, table: str, footer: str = "") -> str:
    return f"""<!DOCTYPE html>
<html lang="es">
  <body style="margin:0;padding:24px;background:#f5f5f5;font-family:Arial,Helvetica,sans-serif;color:#222;">
    <div style="max-width:560px;margin:0 auto;background:#fff;border-radius:8px;padding:24px;">
      <h2 style="margin-top:0;color:{ACCENT};">{escape(title)}</h2>
      <p>{intro}</p>
      <table style="border-collapse:collapse;width:100%;">{table}</table>
      {footer}
      <p style="margin-top:24px;color:#888;font-size:12px;">{BRAND}</p>
    </div>
  </body>
</html>"""


def customer_confirmation(order: Order) -> tuple[str, str]:
    """Correo al cliente: (asunto, html)"""
    subject = f"Confirmación de abono - {BRAND}"
    intro = f"Hola {escape(order.customer.name)}, recibimos tu abono. ¡Gracias por reservar con nosotros!"
    table = _rows([
        ("Orden", order.order_id),
        ("Abono", order.deposit_label),
        ("Monto", format_clp(order.amount)),
        ("Comentarios", order.customer.comments),
    ])
    footer = "<p>Te contactaremos para coordinar la fecha de tu sesión.</p>"
    return subject, _layout("Pago confirmado", intro, table, footer)


def operator_notification(order: Order) -> tuple[str, str]:
    """Correo al estudio con todos los datos del pago"""
    subject = f"Pago Confirmado - {BRAND} - {order.order_id}"
    intro = "Se confirmó un nuevo abono."
    table = _rows([
        ("Orden", order.order_id),
        ("Orden Flow", str(order.flow_order) if order.flow_order is not None else None),
        ("Monto", format_clp(order.amount)),
        ("Abono", order.deposit_label),
        ("Nombre", order.customer.name),
        ("Email", order.customer.email),
        ("Email pagador", order.payer_email),
        ("Celular", order.customer.phone),
        ("Género", order.customer.gender),
        ("Comentarios", order.customer.comments),
    ])
    return subject, _layout("Pago confirmado", intro, table)


def newsletter_signup(
    *, nombre: str, apellido: str, telefono: str, instagram: str, email: str
) -> tuple[str, str, str]:
    """Aviso al estudio de un nuevo suscriptor: (asunto, html, texto)"""
    subject = f"Nuevo suscriptor Newsletter - {BRAND}"
    handle = "@" + instagram.lstrip("@")
    full_name = f"{nombre} {apellido}"
    table = _rows([
        ("Nombre completo", full_name),
        ("Email", email),
        ("Teléfono", telefono),
        ("Instagram", handle),
    ])
    html = _layout("Nuevo suscriptor", "Se registró una nueva persona en el newsletter.", table)
    text = (
        f"NUEVO SUSCRIPTOR NEWSLETTER - {BRAND.upper()}\n\n"
        f"- Nombre: {full_name}\n"
        f"- Email: {email}\n"
        f"- Teléfono: {telefono}\n"
        f"- Instagram: {handle}\n"
    )
    return subject, html, text


def appointment_body(rows: Iterable[tuple[str, Optional[str]]]) -> str:
    return _layout("Nueva cita", "Detalles de la reserva:", _rows(rows))
