from django.core.management.base import BaseCommand, CommandError

from api.models import User


class Command(BaseCommand):
    help = 'Give the admin role to an existing user (bootstraps the first admin).'

    def add_arguments(self, parser):
        parser.add_argument("email")

    def handle(self, *args, **options):
        try:
            user = User.objects.get(email__iexact=options["email"])
        except User.DoesNotExist:
            raise CommandError(f'No user with email {options["email"]}')

        user.role = User.Role.ADMIN
        user.save()
        self.stdout.write(self.style.SUCCESS(f'{user.email} is now an admin.'))
