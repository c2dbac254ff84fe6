from django.core.management.base import BaseCommand

from payments.services.reminders import send_payment_reminders


class Command(BaseCommand):
    help = "E-mail guests whose payment QR code expired before the booking was paid."

    def handle(self, *args, **options):
        self.stdout.write(self.style.MIGRATE_HEADING("Sending payment reminders"))
        result = send_payment_reminders()
        self.stdout.write(f"Due: {result['due']}  sent: {result['sent']}  failed: {result['failed']}")
        if result["failed"]:
            self.stdout.write(self.style.WARNING(f"{result['failed']} reminders could not be sent."))
        else:
            self.stdout.write(self.style.SUCCESS("Payment reminders sent."))
