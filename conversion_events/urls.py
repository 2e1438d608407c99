from django.urls import path

from . import views

app_name = "conversion_events"

urlpatterns = [
    path("track/pageview/", views.track_page_view, name="track_pageview"),
    path("track/viewcontent/", views.track_view_content, name="track_viewcontent"),
    path("track/addtocart/", views.track_add_to_cart, name="track_addtocart"),
    path("track/addtowishlist/", views.track_add_to_wishlist, name="track_addtowishlist"),
    path("track/initiatecheckout/", views.track_initiate_checkout, name="track_initiatecheckout"),
    path("track/addpaymentinfo/", views.track_add_payment_info, name="track_addpaymentinfo"),
    path("track/purchase/", views.track_purchase, name="track_purchase"),
    path("track/lead/", views.track_lead, name="track_lead"),
    path("webhooks/cakto/", views.cakto_webhook, name="webhook_cakto"),
    path("webhooks/kiwify/", views.kiwify_webhook, name="webhook_kiwify"),
]
