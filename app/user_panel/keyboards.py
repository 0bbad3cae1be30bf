from typing import Dict, Iterable, List, Optional, Sequence

from aiogram.types import ReplyKeyboardMarkup, KeyboardButton, InlineKeyboardMarkup, InlineKeyboardButton
from aiogram.utils.keyboard import InlineKeyboardBuilder

from app.schemas.activity import ActivityOffer
from app.utils.cart import Cart
from app.utils.intake_wizard import IntakeWizard, STEP_ORDER, STEP_TITLES
from app.utils.datetime_utils import format_date

# ===== ГЛАВНЫЕ КЛАВИАТУРЫ =====

main = ReplyKeyboardMarkup(
    keyboard=[
        [KeyboardButton(text='Stages'), KeyboardButton(text='Mon panier')],
        [KeyboardButton(text='Mes enfants'), KeyboardButton(text='Mon espace')],
        [KeyboardButton(text='Mon profil')]
    ],
    resize_keyboard=True
)

inline_in_menu = InlineKeyboardMarkup(
    inline_keyboard=[
        [InlineKeyboardButton(text='Menu principal', callback_data='back_to_main')]
    ]
)

yes_no = InlineKeyboardMarkup(
    inline_keyboard=[
        [
            InlineKeyboardButton(text='Oui', callback_data='answer:yes'),
            InlineKeyboardButton(text='Non', callback_data='answer:no'),
        ]
    ]
)


# ===== ПРОФИЛЬ =====

PROFILE_LABELS = {
    'first_name': 'Prénom',
    'last_name': 'Nom',
    'phone_number': 'Téléphone',
    'email': 'E-mail',
    'address': 'Adresse',
    'postal_code': 'Code postal',
    'locality': 'Localité',
}


def profile_menu(is_complete: bool) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    if not is_complete:
        builder.button(text='Compléter mon profil', callback_data='profile_fill')
    for field, label in PROFILE_LABELS.items():
        builder.button(text=f"Modifier : {label}", callback_data=f"profile_edit:{field}")
    builder.button(text='Personnes autorisées', callback_data='persons_list')
    builder.button(text='Menu principal', callback_data='back_to_main')
    builder.adjust(1)
    return builder.as_markup()


profile_confirm = InlineKeyboardMarkup(
    inline_keyboard=[
        [InlineKeyboardButton(text='Enregistrer', callback_data='profile_save')],
        [InlineKeyboardButton(text='Recommencer', callback_data='profile_fill')],
    ]
)

profile_required = InlineKeyboardMarkup(
    inline_keyboard=[
        [InlineKeyboardButton(text='Compléter mon profil', callback_data='profile_fill')]
    ]
)


# ===== ДОВЕРЕННЫЕ ЛИЦА =====

def authorized_persons_menu(persons: Sequence) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    for person in persons:
        builder.button(text=f"Supprimer {person.first_name} {person.last_name}", callback_data=f"person_delete:{person.id}")
    builder.button(text='Ajouter une personne', callback_data='person_add')
    builder.button(text='Retour au profil', callback_data='profile_show')
    builder.adjust(1)
    return builder.as_markup()


# ===== ДЕТИ =====

def kids_menu(kids: Sequence) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    for kid in kids:
        builder.button(text=kid.full_name, callback_data=f"kid_view:{kid.id}")
    builder.button(text='Ajouter un enfant', callback_data='kid_new')
    builder.button(text='Menu principal', callback_data='back_to_main')
    builder.adjust(1)
    return builder.as_markup()


def kid_details_menu(kid_id: int) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.button(text='Modifier la fiche', callback_data=f"kid_edit:{kid_id}")
    builder.button(text='Archiver', callback_data=f"kid_archive:{kid_id}")
    builder.button(text='Retour à mes enfants', callback_data='kids_list')
    builder.adjust(1)
    return builder.as_markup()


def kid_archive_confirm(kid_id: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text='Oui, archiver', callback_data=f"kid_archive_yes:{kid_id}")],
            [InlineKeyboardButton(text='Annuler', callback_data=f"kid_view:{kid_id}")],
        ]
    )


# ===== АНКЕТА =====

def wizard_steps(wizard: IntakeWizard) -> InlineKeyboardMarkup:
    """Навигация по шагам. Недоступные шаги показаны, но не нажимаются"""
    builder = InlineKeyboardBuilder()
    for index, step in enumerate(STEP_ORDER, start=1):
        title = f"{index}. {STEP_TITLES[step]}"
        if step == wizard.current:
            builder.button(text=f"> {title}", callback_data=f"wiz_goto:{step.value}")
        elif wizard.can_navigate(step):
            builder.button(text=title, callback_data=f"wiz_goto:{step.value}")
        else:
            builder.button(text=f"({title})", callback_data="no_action")
    if wizard.edit_mode:
        builder.button(text='Enregistrer la fiche', callback_data='wiz_save')
    builder.button(text='Quitter', callback_data='wiz_cancel')
    builder.adjust(2, 2, 2, 1, 1)
    return builder.as_markup()


def wizard_question(
    kind: str,
    optional: bool,
    choices: Sequence[str] = (),
    options: Optional[Dict[int, str]] = None,
    selected: Iterable[int] = (),
    can_keep: bool = False
) -> Optional[InlineKeyboardMarkup]:
    """Кнопки ответа на вопрос анкеты"""
    builder = InlineKeyboardBuilder()
    selected = set(selected)

    if kind == 'bool':
        builder.button(text='Oui', callback_data='wiz_answer:yes')
        builder.button(text='Non', callback_data='wiz_answer:no')
    elif kind == 'choice':
        for index, choice in enumerate(choices):
            builder.button(text=choice, callback_data=f"wiz_choice:{index}")
    elif kind == 'school':
        for option_id, label in (options or {}).items():
            builder.button(text=label, callback_data=f"wiz_choice:{option_id}")
    elif kind == 'multi':
        for option_id, label in (options or {}).items():
            mark = '[x]' if option_id in selected else '[ ]'
            builder.button(text=f"{mark} {label}", callback_data=f"wiz_toggle:{option_id}")
        builder.button(text='Valider la sélection', callback_data='wiz_multi_done')

    if optional:
        builder.button(text='Passer', callback_data='wiz_skip')
    if can_keep:
        builder.button(text='Garder la valeur actuelle', callback_data='wiz_keep')
    builder.button(text='Étapes', callback_data='wiz_steps')
    builder.adjust(2 if kind == 'bool' else 1)
    return builder.as_markup()


def wizard_retry() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text='Réessayer', callback_data='wiz_submit')],
            [InlineKeyboardButton(text='Étapes', callback_data='wiz_steps')],
        ]
    )


# ===== КАТАЛОГ =====

def choose_kid(kids: Sequence) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    for kid in kids:
        builder.button(text=kid.full_name, callback_data=f"browse_kid:{kid.id}")
    builder.button(text='Menu principal', callback_data='back_to_main')
    builder.adjust(1)
    return builder.as_markup()


def choose_center(centers: Sequence) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.button(text='Tous les centres', callback_data='browse_center:all')
    for center in centers:
        builder.button(text=center.name, callback_data=f"browse_center:{center.id}")
    builder.adjust(1)
    return builder.as_markup()


def choose_period(periods: Sequence[str]) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.button(text='Toutes les périodes', callback_data='browse_period:all')
    for index, period in enumerate(periods):
        builder.button(text=period, callback_data=f"browse_period:{index}")
    builder.adjust(1)
    return builder.as_markup()


def choose_week(weeks: Sequence[str]) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.button(text='Toutes les semaines', callback_data='browse_week:all')
    for index, week in enumerate(weeks):
        builder.button(text=week, callback_data=f"browse_week:{index}")
    builder.adjust(1)
    return builder.as_markup()


def offers_page(offers: List[ActivityOffer], page: int, total_pages: int, cart: Cart, kid_id: int) -> InlineKeyboardMarkup:
    """Действия по предложениям страницы и листание"""
    builder = InlineKeyboardBuilder()
    rows = []

    for offer in offers:
        short = f"{offer.stage_title} {format_date(offer.start_date)}"
        if f"{offer.session_id}-{kid_id}" in cart:
            builder.button(text=f"Dans le panier : {short}", callback_data="no_action")
        elif offer.can_add_to_cart:
            builder.button(text=f"Ajouter : {short} ({offer.price} €)", callback_data=f"offer_add:{offer.session_id}")
        elif offer.needs_inclusion and not offer.already_registered:
            builder.button(text=f"Demande d'inclusion : {short}", callback_data=f"offer_inclusion:{offer.session_id}")
        elif offer.on_waiting_list:
            builder.button(text=f"Quitter la liste d'attente : {short}", callback_data=f"offer_unwait:{offer.session_id}")
        elif offer.is_full and not offer.already_registered:
            builder.button(text=f"Liste d'attente : {short}", callback_data=f"offer_wait:{offer.session_id}")
        else:
            builder.button(text=short, callback_data="no_action")
        rows.append(1)

    navigation = 0
    if page > 0:
        builder.button(text='< Précédent', callback_data=f"offers_page:{page - 1}")
        navigation += 1
    if page < total_pages - 1:
        builder.button(text='Suivant >', callback_data=f"offers_page:{page + 1}")
        navigation += 1
    if navigation:
        rows.append(navigation)

    builder.button(text='Voir mon panier', callback_data='cart_show')
    builder.button(text='Changer de filtre', callback_data='browse_restart')
    rows.extend([1, 1])
    builder.adjust(*rows)
    return builder.as_markup()


# ===== КОРЗИНА И ОФОРМЛЕНИЕ =====

def cart_menu(cart: Cart) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    for item in cart.items:
        builder.button(text=f"Retirer : {item.activity_name} ({item.kid_name})", callback_data=f"cart_remove:{item.id}")
    if cart.items:
        declaration = 'Oui' if cart.reduced_declaration else 'Non'
        builder.button(text=f"Tarif réduit demandé : {declaration}", callback_data='cart_reduced_toggle')
        builder.button(text='Vider le panier', callback_data='cart_clear')
        builder.button(text='Passer commande', callback_data='checkout_start')
    builder.button(text='Continuer mes achats', callback_data='browse_restart')
    builder.adjust(1)
    return builder.as_markup()


def checkout_options(payment_enabled: bool) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    if payment_enabled:
        builder.button(text='Payer maintenant', callback_data='checkout_pay_now')
    builder.button(text='Payer plus tard (facture)', callback_data='checkout_invoice')
    builder.button(text='Retour au panier', callback_data='cart_show')
    builder.adjust(1)
    return builder.as_markup()


def payment_link(url: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text='Procéder au paiement', url=url)],
            [InlineKeyboardButton(text='Mon espace', callback_data='dashboard_show')],
        ]
    )


dashboard_menu = InlineKeyboardMarkup(
    inline_keyboard=[
        [InlineKeyboardButton(text='Rafraîchir', callback_data='dashboard_show')],
        [InlineKeyboardButton(text='Menu principal', callback_data='back_to_main')],
    ]
)
