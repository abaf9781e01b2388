"""Management command to verify visit, order and billing invariants."""

from django.core.management.base import BaseCommand

from django_visits.invariants import CHECKS


class Command(BaseCommand):
    help = "Report stored rows that violate visit, order or billing invariants (read-only)"

    def add_arguments(self, parser):
        parser.add_argument(
            "--check",
            type=str,
            help="Run only a specific check (e.g., billing_matches_ledger)",
        )
        parser.add_argument(
            "--detailed",
            action="store_true",
            help="Show every violation, not just the count",
        )

    def handle(self, *args, **options):
        specific = options.get("check")
        detailed = options.get("detailed", False)

        self.stdout.write(self.style.NOTICE("\n" + "=" * 70))
        self.stdout.write(self.style.NOTICE("Visit Invariant Verification"))
        self.stdout.write(self.style.NOTICE("=" * 70 + "\n"))

        total_pass = 0
        total_fail = 0

        for name, check in CHECKS:
            if specific and name != specific:
                continue

            violations = check()
            if violations:
                total_fail += 1
                self.stdout.write(f"  {self.style.ERROR('FAIL')} {name} ({len(violations)})")
                if detailed:
                    for violation in violations:
                        self.stdout.write(f"       {violation}")
            else:
                total_pass += 1
                self.stdout.write(f"  {self.style.SUCCESS('PASS')} {name}")

        self.stdout.write("\n" + "=" * 70)
        self.stdout.write(f"\n  {self.style.SUCCESS('PASS')}: {total_pass}")
        self.stdout.write(f"  {self.style.ERROR('FAIL')}: {total_fail}\n")

        if total_fail == 0:
            self.stdout.write(self.style.SUCCESS("All invariant checks passed!"))
        else:
            self.stdout.write(self.style.ERROR(f"{total_fail} check(s) failed!"))
            raise SystemExit(1)
