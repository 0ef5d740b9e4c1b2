from app.models.user import User
from app.models.plugin import Plugin
from app.models.bundle import Bundle
from app.models.discount import Discount, CouponRedemption
from app.models.cart import SavedCart
from app.models.order import Order
from app.models.plugin_download import PluginDownload, DownloadEvent
from app.models.review import Review
from app.models.notifications import Notification

# add ALL models here
