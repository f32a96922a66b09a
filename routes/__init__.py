from routes.health import health_bp
from routes.courts import courts_bp
from routes.booking import booking_bp
from routes.slots import slots_bp
from routes.payments import payments_bp
from routes.stripe_webhook import webhook_bp
from routes.admin import admin_bp
