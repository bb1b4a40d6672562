from django.core.management.base import BaseCommand, CommandError
from django.contrib.auth import get_user_model

from sitedesk.core.validators import normalize_identifier, is_valid_phone, PHONE_ERROR

User = get_user_model()


class Command(BaseCommand):
    help = 'Create the single admin account (fails if an admin already exists)'

    def add_arguments(self, parser):
        parser.add_argument('email', help='Email or account name of the admin')
        parser.add_argument('--password', required=True)
        parser.add_argument('--phone', required=True, help='Phone number starting with +60')
        parser.add_argument('--name', default='Administrator')

    def handle(self, *args, **options):
        if User.objects.admin_exists():
            raise CommandError('An admin account already exists!')

        phone = options['phone']
        if not is_valid_phone(phone):
            raise CommandError(PHONE_ERROR)

        email = normalize_identifier(options['email'])
        if User.objects.filter(email__iexact=email).exists():
            raise CommandError(f'Account already exists with email {email}')

        user = User.objects.create_user(
            email=email,
            password=options['password'],
            phone=phone,
            name=options['name'],
            role=User.ROLE_ADMIN,
            is_staff=True,
        )
        self.stdout.write(self.style.SUCCESS(f'✓ Created admin account: {user.email}'))
