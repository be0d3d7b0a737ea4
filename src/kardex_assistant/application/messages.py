"""Mensagens ao cliente (espanhol, público da loja).

Somente formatação; nenhuma regra de negócio aqui.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from kardex_assistant.domain.enums import ErrorCategory, PaymentMethod
from kardex_assistant.domain.models import CatalogEntry, MatchCandidate, PendingOrder

ERROR_TEMPLATES: dict[ErrorCategory, str] = {
    ErrorCategory.CONNECTIVITY: (
        "😔 Tenemos problemas para conectar con nuestro sistema. "
        "Por favor, inténtalo de nuevo en unos minutos."
    ),
    ErrorCategory.TIMEOUT: (
        "⏱️ La operación está tardando más de lo normal. Por favor, inténtalo de nuevo."
    ),
    ErrorCategory.VALIDATION: (
        "⚠️ Hay un problema con los datos de tu pedido. "
        "Revisa los productos y cantidades e inténtalo otra vez."
    ),
    ErrorCategory.STOCK: (
        "📦 Lo siento, no tenemos stock suficiente de ese producto. "
        "¿Quieres que te sugiera alternativas?"
    ),
    ErrorCategory.NOT_FOUND: (
        "🔍 No encontré ese producto. Escribe *CATALOGO* para ver lo que tenemos."
    ),
    ErrorCategory.STATE_CONFLICT: "🔄 Retomemos desde donde nos quedamos.",
    ErrorCategory.UNKNOWN: (
        "😅 Disculpa, ocurrió un error inesperado. Por favor, inténtalo de nuevo."
    ),
}

PAYMENT_LABELS: dict[PaymentMethod, str] = {
    PaymentMethod.YAPE: "Yape",
    PaymentMethod.PLIN: "Plin",
    PaymentMethod.TRANSFER: "Transferencia bancaria",
    PaymentMethod.CASH: "Efectivo contra entrega",
    PaymentMethod.CARD: "Tarjeta",
}


def money(amount: Decimal, currency: str = "S/.") -> str:
    return f"{currency} {amount:.2f}"


def greeting(store_name: str, customer_name: str | None = None) -> str:
    who = f" {customer_name}" if customer_name else ""
    return (
        f"👋 ¡Hola{who}! Bienvenido a *{store_name}*.\n\n"
        "Puedo ayudarte a:\n"
        "• Ver el *catálogo*\n"
        "• Consultar *precios* y *stock*\n"
        "• Hacer un *pedido* (ej: \"quiero 2 mouse logitech\")\n\n"
        "¿Qué necesitas hoy?"
    )


def help_message() -> str:
    return (
        "💡 *Puedes escribirme cosas como:*\n"
        "• \"catálogo\"\n"
        "• \"¿cuánto cuesta el teclado gamer?\"\n"
        "• \"¿tienen audífonos sony?\"\n"
        "• \"quiero 2 mouse y 1 teclado\"\n"
        "• \"estado de mi pedido\"\n"
        "• \"cancelar\""
    )


def catalog_listing(
    entries: Sequence[CatalogEntry],
    currency: str = "S/.",
    promo_notes: dict[int, str] | None = None,
) -> str:
    if not entries:
        return "📭 Por ahora no tenemos productos disponibles."
    lines = ["🛍️ *Productos disponibles:*", ""]
    for position, entry in enumerate(entries, start=1):
        lines.append(f"{position}. *{entry.name}* - {money(entry.price, currency)}")
        note = (promo_notes or {}).get(entry.id)
        if note:
            lines.append(f"   {note}")
    lines += ["", "💬 Para pedir, escribe por ejemplo: \"quiero 2 mouse logitech\""]
    return "\n".join(lines)


def product_detail(
    entry: CatalogEntry, currency: str = "S/.", promo_note: str | None = None
) -> str:
    stock = f"✅ {entry.stock} disponibles" if entry.stock > 0 else "❌ Agotado"
    text = f"📦 *{entry.name}*\n💰 Precio: {money(entry.price, currency)}\n{stock}"
    if promo_note:
        text += f"\n{promo_note}"
    return text


def alternatives(entries: Sequence[CatalogEntry], currency: str = "S/.") -> str:
    if not entries:
        return ""
    options = "\n".join(
        f"• *{entry.name}* - {money(entry.price, currency)} ({entry.stock} disponibles)"
        for entry in entries
    )
    return f"💡 *También te puede interesar:*\n{options}"


def suggestions(
    query: str,
    candidates: Sequence[MatchCandidate],
    currency: str = "S/.",
    popular: Sequence[CatalogEntry] = (),
) -> str:
    if not candidates:
        text = f"🔍 No encontré \"{query}\" en nuestro catálogo.\n\n"
        if popular:
            text += alternatives(popular, currency) + "\n\n"
        return text + "Escribe *CATALOGO* para ver todos los productos."
    options = "\n".join(
        f"{i}. *{c.entry.name}* - {money(c.entry.price, currency)}"
        for i, c in enumerate(candidates, start=1)
    )
    return f"🤔 No encontré exactamente \"{query}\". ¿Quizás quisiste decir?\n\n{options}"


def order_summary(order: PendingOrder, currency: str = "S/.") -> str:
    lines = ["🧾 *Resumen de tu pedido:*", ""]
    for line in order.lines:
        detail = f"• {line.name} - {line.quantity} x {money(line.final_price, currency)}"
        if line.discount > 0:
            detail += f" (antes {money(line.unit_price, currency)})"
        lines.append(f"{detail} = {money(line.subtotal or Decimal('0'), currency)}")
    lines += ["", f"💰 *Total: {money(order.total, currency)}*"]
    return "\n".join(lines)


def confirmation_request(
    order: PendingOrder, currency: str = "S/.", notes: Sequence[str] = ()
) -> str:
    text = order_summary(order, currency)
    if notes:
        text += "\n\n" + "\n".join(f"⚠️ {note}" for note in notes)
    return text + "\n\n¿Confirmas tu pedido? Responde *SI* o *NO*."


def ask_customer_name() -> str:
    return "📝 Para registrar tu pedido, ¿me indicas tu nombre completo?"


def ask_address() -> str:
    return (
        "📍 ¿A qué dirección enviamos tu pedido? "
        "Si prefieres recoger en tienda, escribe *TIENDA*."
    )


def ask_payment_method() -> str:
    options = "\n".join(f"• {label}" for label in PAYMENT_LABELS.values())
    return f"💳 ¿Cómo deseas pagar?\n{options}"


def invalid_payment_method() -> str:
    return "🤔 No reconocí el método de pago. " + ask_payment_method()


def order_closed(order: PendingOrder, currency: str = "S/.") -> str:
    number = order.backend_order_number or str(order.backend_order_id or "")
    method = PAYMENT_LABELS.get(order.payment_method) if order.payment_method else None
    text = f"✅ ¡Pedido *{number}* registrado!\n💰 Total: {money(order.total, currency)}"
    if method:
        text += f"\n💳 Pago: {method}"
    if order.delivery_address:
        text += f"\n📍 Entrega: {order.delivery_address}"
    return text


def follow_up(store_name: str) -> str:
    return (
        f"🙏 ¡Gracias por comprar en *{store_name}*! "
        "Te avisaremos cuando tu pedido esté en camino. "
        "Escribe *ESTADO* para consultar tu pedido cuando quieras."
    )


def order_cancelled() -> str:
    return "🗑️ Tu pedido fue cancelado. Si necesitas algo más, aquí estoy."


def confirm_cancel() -> str:
    return "❓ ¿Seguro que quieres cancelar tu pedido? Responde *SI* o *NO*."


def cancel_aborted() -> str:
    return "👍 Perfecto, tu pedido sigue activo."


def nothing_to_cancel() -> str:
    return "ℹ️ No tienes ningún pedido en curso."


def order_status(order: PendingOrder | None, currency: str = "S/.") -> str:
    if order is None or not order.lines:
        return "ℹ️ No tienes pedidos en curso. ¿Quieres hacer uno?"
    number = order.backend_order_number or "en preparación"
    return f"📦 Pedido *{number}* ({order.status.value}).\n\n" + order_summary(order, currency)


def order_declined() -> str:
    return "👌 Entendido, no confirmé el pedido. ¿Quieres cambiar algo o ver el catálogo?"


def order_items_not_understood() -> str:
    return (
        "🤔 No pude identificar productos en tu mensaje.\n\n"
        "💡 Puedes decirme por ejemplo:\n"
        "• \"Quiero una laptop\"\n"
        "• \"Necesito 2 mouse\"\n\n"
        "O escribe *CATALOGO* para ver todos los productos."
    )


def closure_partial_failure() -> str:
    return (
        "⚠️ Registramos parte de tu pedido pero hubo un problema al terminar. "
        "Escribe *SI* para reintentar; no se duplicarán los productos ya registrados."
    )


def invalid_option(user_input: str, options: Sequence[str]) -> str:
    listed = "\n".join(f"{i}. {option}" for i, option in enumerate(options, start=1))
    return f"❌ \"{user_input}\" no es una opción válida.\n\nOpciones disponibles:\n{listed}"


def ambiguous_input(user_input: str, interpretations: Sequence[str]) -> str:
    listed = "\n".join(f"{i}. {item}" for i, item in enumerate(interpretations, start=1))
    return (
        f"🤔 No estoy seguro de qué quisiste decir con \"{user_input}\".\n\n"
        f"¿Te refieres a:\n{listed}"
    )


def fallback() -> str:
    return "🤔 No te entendí bien. " + help_message()
