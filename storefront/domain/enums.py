# storefront/domain/enums.py
import enum


class ShippingMethod(str, enum.Enum):
    standard = "standard"
    express = "express"
    overnight = "overnight"


class PaymentMethod(str, enum.Enum):
    card = "card"
    online = "online"
    cod = "cod"


class CheckoutVariant(str, enum.Enum):
    cart = "cart"
    buy_now = "buy_now"


class CheckoutStep(str, enum.Enum):
    shipping = "shipping"
    payment = "payment"
    review = "review"
    submitted = "submitted"
    expired = "expired"


class PurchaseIntentStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    cancelled = "cancelled"
    expired = "expired"


TERMINAL_STEPS = frozenset({CheckoutStep.submitted, CheckoutStep.expired})

# Orden de pasos de cada variante; buy-now no tiene revision separada.
STEP_FLOWS: dict[CheckoutVariant, tuple[CheckoutStep, ...]] = {
    CheckoutVariant.cart: (CheckoutStep.shipping, CheckoutStep.payment, CheckoutStep.review),
    CheckoutVariant.buy_now: (CheckoutStep.shipping, CheckoutStep.payment),
}

# Metodos que buy-now acepta como simple discriminador.
BUY_NOW_PAYMENT_METHODS = frozenset({PaymentMethod.online, PaymentMethod.cod})
