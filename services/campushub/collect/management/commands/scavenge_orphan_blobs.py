"""Report or remove bucket objects no collection row references."""

from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from collect.errors import CollectError
from collect.models import CollectionItem, SubmissionFile
from collect.services.config import configured_modules, get_module_config
from collect.services.storage import get_storage_gateway


class Command(BaseCommand):
    help = (
        "Report blobs in the template/submission buckets that no CollectionItem or "
        "SubmissionFile row references (residue of blob-first deletes)."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--module",
            default="",
            help="Only scan this collection module (default: every configured module).",
        )
        parser.add_argument(
            "--delete",
            action="store_true",
            help="Delete orphan blobs after reporting. Default is report-only.",
        )
        parser.add_argument(
            "--show",
            type=int,
            default=50,
            help="How many orphan keys to print (default: 50).",
        )

    def handle(self, *args, **options):
        delete = bool(options["delete"])
        show = max(int(options["show"]), 0)
        try:
            configs = [get_module_config(options["module"])] if options["module"] else configured_modules()
        except CollectError as exc:
            raise CommandError(f"Unknown module: {options['module']}") from exc

        storage = get_storage_gateway()
        referenced = set(
            SubmissionFile.objects.values_list("file_key", flat=True)
        ) | set(
            key for key in CollectionItem.objects.exclude(template_file_key=None).values_list("template_file_key", flat=True)
            if key
        )

        orphans: list[tuple[str, str]] = []
        scanned = 0
        for config in configs:
            prefix = f"collect/{config.module}/"
            for bucket in sorted({config.template_bucket, config.submission_bucket}):
                for key in storage.list(bucket, prefix):
                    scanned += 1
                    if key not in referenced:
                        orphans.append((bucket, key))

        self.stdout.write(f"Scanned blobs: {scanned}")
        self.stdout.write(f"Referenced keys: {len(referenced)}")
        self.stdout.write(f"Orphan blobs: {len(orphans)}")
        for bucket, key in orphans[:show]:
            self.stdout.write(f" - {bucket}:{key}")
        if len(orphans) > show:
            self.stdout.write(f"... ({len(orphans) - show} more)")

        if not delete:
            self.stdout.write(self.style.WARNING("[report-only] Use --delete to remove orphan blobs."))
            return

        deleted = 0
        errors = 0
        for bucket, key in orphans:
            try:
                storage.remove(bucket, [key])
                deleted += 1
            except Exception:
                errors += 1
        self.stdout.write(self.style.SUCCESS(f"Deleted orphan blobs: {deleted}; errors: {errors}"))
