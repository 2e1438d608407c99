from .base import PurchaseWebhook, WebhookAdapter, WebhookResult, process_webhook
from .cakto import CaktoAdapter
from .kiwify import KiwifyAdapter
