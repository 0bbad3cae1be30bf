from aiogram import Router, F
from aiogram.types import Message, CallbackQuery

import app.user_panel.keyboards as kb
from app.database.managers.dashboard_manager import DashboardManager, DashboardSummary
from app.database.models import InvoiceStatus, PaymentStatus, User, WaitingListStatus
from app.database.session import async_session
from app.middlewares.profile_middleware import ProfileMiddleware
from app.utils.datetime_utils import format_date, format_period, days_until
from app.utils.logging_config import get_logger


router = Router(name="dashboard")
router.message.middleware(ProfileMiddleware())
router.callback_query.middleware(ProfileMiddleware())

logger = get_logger(__name__)


PAYMENT_LABELS = {
    PaymentStatus.pending: "en attente de paiement",
    PaymentStatus.paid: "payé",
    PaymentStatus.cancelled: "annulé",
}

INVOICE_LABELS = {
    InvoiceStatus.pending: "à payer",
    InvoiceStatus.paid: "payée",
    InvoiceStatus.cancelled: "annulée",
}


def dashboard_text(summary: DashboardSummary) -> str:
    lines = ["<b>Mon espace</b>", "", "<b>Inscriptions</b>"]
    if summary.registrations:
        for registration in summary.registrations:
            activity = registration.activity_session
            lines.append(
                f"{activity.stage.title} - {registration.kid.full_name}\n"
                f"{activity.center.name}, {format_period(activity.start_date, activity.end_date)}\n"
                f"{registration.amount_paid} €, {PAYMENT_LABELS[registration.payment_status]}"
            )
    else:
        lines.append("Aucune inscription")

    lines += ["", "<b>Factures</b>"]
    if summary.invoices:
        for invoice in summary.invoices:
            if invoice.is_overdue:
                overdue = " (échue)"
            elif invoice.status == InvoiceStatus.pending:
                overdue = f" (dans {days_until(invoice.due_date)} j)"
            else:
                overdue = ""
            lines.append(
                f"{invoice.invoice_number} : {invoice.amount} €, {INVOICE_LABELS[invoice.status]}{overdue}\n"
                f"Communication : {invoice.communication}, échéance {format_date(invoice.due_date)}"
            )
    else:
        lines.append("Aucune facture")

    waiting = [entry for entry in summary.waiting_list if entry.status == WaitingListStatus.waiting]
    if waiting:
        lines += ["", "<b>Listes d'attente</b>"]
        for entry in waiting:
            lines.append(f"{entry.activity_session.stage.title} - {entry.kid.full_name}")

    lines += ["", f"<b>Solde à payer : {summary.outstanding_balance} €</b>"]
    return "\n".join(lines)


async def _send_dashboard(message: Message, user: User) -> None:
    async with async_session() as session:
        summary, error = await DashboardManager(session).get_summary(user.id)

    if error:
        await message.answer(error, reply_markup=kb.dashboard_menu)
        return
    await message.answer(dashboard_text(summary), reply_markup=kb.dashboard_menu)


@router.message(F.text == 'Mon espace')
async def show_dashboard(message: Message, user: User):
    """Записи, счета и остаток к оплате"""
    logger.info(f"Пользователь {message.from_user.id} открыл кабинет")
    await _send_dashboard(message, user)


@router.callback_query(F.data == 'dashboard_show')
async def show_dashboard_callback(callback: CallbackQuery, user: User):
    await callback.answer()
    await _send_dashboard(callback.message, user)
