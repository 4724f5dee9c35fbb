import redis
from django.conf import settings

##### NAMESPACES
REQUEST_NEXT_THROTTLE_REDIS_KEY = "REQUEST_NEXT_THROTTLE:" #string per worker id, expires after the cooldown window
#####


conn = redis.Redis.from_url(
    settings.REDIS_URL,
    decode_responses=True
)
