# Routers module for the seminar registration API
from seminar_api.routers import orders
from seminar_api.routers import webhooks
from seminar_api.routers import cron
