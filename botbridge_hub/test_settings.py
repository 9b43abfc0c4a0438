import os

os.environ.setdefault('SECRET_KEY', 'botbridge-test-secret-key')

from .settings import *  # noqa: E402,F401,F403

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = False
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = None

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

ESCROW_GATEWAY_BACKEND = 'memory'
RAZORPAY_KEY_ID = 'rzp_test_key'
RAZORPAY_KEY_SECRET = 'rzp_test_secret'
RAZORPAY_WEBHOOK_SECRET = 'whsec_test'

PLATFORM_COMMISSION_RATE = '0.10'
PROFILE_BOOST_PRICE = '15'
PROFILE_BOOST_DAYS = '14'
INVITE_LIMIT_FREE = '3'
INVITE_LIMIT_PRO = '10'
INVITE_LIMIT_BUSINESS = '25'

ADMIN_EMAIL = None
ADMIN_USER_ID = None

LOGGING['root']['level'] = 'WARNING'
