"""
WSGI config for registre_locatif project.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'registre_locatif.settings')

application = get_wsgi_application()
