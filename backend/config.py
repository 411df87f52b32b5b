import os
from jinja2 import Environment, FileSystemLoader, select_autoescape
from dotenv import load_dotenv

load_dotenv()

SECRET_KEY = os.getenv('SECRET_KEY', 'default_secret_key')
SESSION_SIGNING_KEY = os.getenv('SESSION_SIGNING_KEY')
DATABASE_URI = os.getenv('DATABASE_URI', 'sqlite:///vault.db')
BACKEND_URL = os.getenv('BACKEND_URL', 'http://localhost:5000')
FRONTEND_URL = os.getenv('FRONTEND_URL', '*')
PEPPER = os.getenv('PEPPER', '')
BCRYPT_LOG_ROUNDS = int(os.getenv('BCRYPT_LOG_ROUNDS', '12'))
RATELIMIT_ENABLED = os.getenv('RATELIMIT_ENABLED', 'True').lower() in ['true', '1', 't']

MAILERSEND_API_KEY = os.getenv('MAILERSEND_API_KEY')
MAILERSEND_FROM_EMAIL = os.getenv('MAILERSEND_FROM_EMAIL', 'noreply@trial.mailersend.net')
MAIL_FROM_NAME = 'CLUPSO Vault'

TOTP_ISSUER = os.getenv('TOTP_ISSUER', 'CLUPSO Vault')

SESSION_TOKEN_MINUTES = 7
DEVICE_TRUST_DAYS = 5
PENDING_DEVICE_MINUTES = 10
RESET_TOKEN_MINUTES = 15
ACTIVITY_LIST_LIMIT = 50

TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'templates')

template_loader = FileSystemLoader(searchpath=TEMPLATE_DIR)
template_env = Environment(loader=template_loader, autoescape=select_autoescape(['html']))
