"""Customer-facing notification texts, per locale."""
from typing import Optional

from app.core.config import DEFAULT_LOCALE
from app.models.enums import OrderStatus

ORDER_STATUS_MESSAGES = {
    "bn": {
        OrderStatus.PENDING: "আপনার অর্ডারটি গ্রহণ করা হয়েছে। (অর্ডার আইডিঃ #{order_id})",
        OrderStatus.CONFIRMED: "ধন্যবাদ! আপনার অর্ডারটি সফলভাবে নিশ্চিত হয়েছে। আমরা শীঘ্রই প্রসেসিং শুরু করব। (অর্ডার আইডিঃ #{order_id})",
        OrderStatus.PROCESSING: "আপনার অর্ডারটি এখন প্রসেস করা হচ্ছে। খুব দ্রুতই শিপ করা হবে। (অর্ডার আইডিঃ #{order_id})",
        OrderStatus.SHIPPED: "আপনার অর্ডারটি এখন শিপ করা হয়েছে! শীঘ্রই আপনার ঠিকানায় পৌঁছাবে। (অর্ডার আইডিঃ #{order_id})",
        OrderStatus.DELIVERED: "অভিনন্দন! আপনার অর্ডারটি সফলভাবে ডেলিভারি হয়েছে। আমাদের সাথে থাকার জন্য ধন্যবাদ! (অর্ডার আইডিঃ #{order_id})",
        OrderStatus.CANCELLED: "আপনার অর্ডারটি বাতিল করা হয়েছে। যদি এটি ভুলবশত হয়ে থাকে, অনুগ্রহ করে আমাদের সাপোর্ট টিমের সাথে যোগাযোগ করুন। (অর্ডার আইডিঃ #{order_id})",
    },
    "en": {
        OrderStatus.PENDING: "Your order has been received. (Order ID: #{order_id})",
        OrderStatus.CONFIRMED: "Thank you! Your order is confirmed and we will start processing it soon. (Order ID: #{order_id})",
        OrderStatus.PROCESSING: "Your order is being processed and will ship shortly. (Order ID: #{order_id})",
        OrderStatus.SHIPPED: "Your order has shipped and will reach you soon. (Order ID: #{order_id})",
        OrderStatus.DELIVERED: "Your order has been delivered. Thank you for staying with us! (Order ID: #{order_id})",
        OrderStatus.CANCELLED: "Your order has been cancelled. If this was a mistake, please contact support. (Order ID: #{order_id})",
    },
}

MESSAGES = {
    "bn": {
        "wallet_payment_completed": "আপনার ওয়ালেট থেকে {amount} টাকা পরিশোধ সম্পন্ন হয়েছে। (অর্ডার আইডিঃ #{order_id})",
        "cod_payment_pending": "আপনার অর্ডারটি নিশ্চিত হয়েছে। দয়া করে পণ্য গ্রহণের সময় {amount} টাকা পরিশোধ করুন। (অর্ডার আইডিঃ #{order_id})",
        "gateway_payment_completed": "আপনার {amount} টাকার অনলাইন পেমেন্ট সফল হয়েছে। (অর্ডার আইডিঃ #{order_id})",
        "gateway_payment_failed": "দুঃখিত! আপনার পেমেন্ট সম্পন্ন হয়নি। অনুগ্রহ করে আবার চেষ্টা করুন। (অর্ডার আইডিঃ #{order_id})",
        "deposit_completed": "অভিনন্দন! আপনার ওয়ালেটে {amount} টাকা সফলভাবে জমা হয়েছে। (লেনদেন আইডি: {tran_id})",
        "deposit_failed": "দুঃখিত! আপনার ওয়ালেটে টাকা জমা দেওয়া সম্ভব হয়নি। অনুগ্রহ করে আবার চেষ্টা করুন।",
        "subscription_created": "আপনার সাবস্ক্রিপশন সফলভাবে চালু হয়েছে।",
        "subscription_delivery_scheduled": "আপনার সাবস্ক্রিপশন ডেলিভারি {delivery_date} তারিখে নির্ধারিত হয়েছে।",
        "subscription_delivery_scheduled_cod": "আপনার সাবস্ক্রিপশন ডেলিভারি {delivery_date} তারিখে নির্ধারিত হয়েছে। দয়া করে পণ্য গ্রহণের সময় পেমেন্ট করুন।",
        "subscription_renewed": "আপনার সাবস্ক্রিপশন সফলভাবে রিনিউ হয়েছে।",
        "subscription_paused_balance": "আপনার সাবস্ক্রিপশন পর্যাপ্ত ওয়ালেট ব্যালেন্সের অভাবে সাময়িকভাবে বন্ধ হয়েছে। অনুগ্রহ করে রিচার্জ করুন।",
        "subscription_paused_next_cycle": "পরবর্তী সাবস্ক্রিপশন পরিশোধের জন্য পর্যাপ্ত ব্যালেন্স নেই, অনুগ্রহ করে ওয়ালেট রিচার্জ করুন।",
        "subscription_paused_stock": "আপনার সাবস্ক্রিপশন সাময়িকভাবে বন্ধ হয়েছে কারণ পণ্যটি স্টকে নেই।",
        "subscription_paused": "আপনার সাবস্ক্রিপশন সাময়িকভাবে বন্ধ করা হয়েছে।",
        "subscription_cancelled": "আপনার সাবস্ক্রিপশন বাতিল করা হয়েছে।",
    },
    "en": {
        "wallet_payment_completed": "{amount} BDT was paid from your wallet. (Order ID: #{order_id})",
        "cod_payment_pending": "Your order is confirmed. Please pay {amount} BDT on delivery. (Order ID: #{order_id})",
        "gateway_payment_completed": "Your online payment of {amount} BDT was successful. (Order ID: #{order_id})",
        "gateway_payment_failed": "Sorry! Your payment could not be completed. Please try again. (Order ID: #{order_id})",
        "deposit_completed": "{amount} BDT has been added to your wallet. (Transaction ID: {tran_id})",
        "deposit_failed": "Sorry! We could not add money to your wallet. Please try again.",
        "subscription_created": "Your subscription is now active.",
        "subscription_delivery_scheduled": "Your subscription delivery is scheduled for {delivery_date}.",
        "subscription_delivery_scheduled_cod": "Your subscription delivery is scheduled for {delivery_date}. Please pay on delivery.",
        "subscription_renewed": "Your subscription has been renewed.",
        "subscription_paused_balance": "Your subscription is paused because your wallet balance is too low. Please top up.",
        "subscription_paused_next_cycle": "There is not enough balance for your next subscription cycle. Please top up your wallet.",
        "subscription_paused_stock": "Your subscription is paused because the product is out of stock.",
        "subscription_paused": "Your subscription has been paused.",
        "subscription_cancelled": "Your subscription has been cancelled.",
    },
}


def resolve_locale(locale: Optional[str]) -> str:
    if locale and locale in MESSAGES:
        return locale
    return DEFAULT_LOCALE if DEFAULT_LOCALE in MESSAGES else "en"


def order_status_message(status: OrderStatus, order_id: int, locale: Optional[str] = None) -> str:
    templates = ORDER_STATUS_MESSAGES[resolve_locale(locale)]
    return templates[status].format(order_id=order_id)


def render(key: str, locale: Optional[str] = None, **params) -> str:
    return MESSAGES[resolve_locale(locale)][key].format(**params)


# Audit text written to order tracking rows. Not shown to customers verbatim.
TRACKING_DESCRIPTIONS = {
    OrderStatus.PENDING: "Order placed",
    OrderStatus.CONFIRMED: "Order confirmed",
    OrderStatus.PROCESSING: "Order is being processed",
    OrderStatus.SHIPPED: "Order shipped",
    OrderStatus.DELIVERED: "Order delivered",
    OrderStatus.CANCELLED: "Order cancelled",
}

COD_CONFIRMED_DESCRIPTION = "Order confirmed, payment pending (cash on delivery)"


def tracking_description(status: OrderStatus) -> str:
    return TRACKING_DESCRIPTIONS[status]
