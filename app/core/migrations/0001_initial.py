import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="StoredDocument",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "collection",
                    models.CharField(
                        db_index=True,
                        help_text="Logical collection the document belongs to",
                        max_length=64,
                    ),
                ),
                (
                    "doc_id",
                    models.CharField(
                        help_text="Document identifier, unique within the collection",
                        max_length=64,
                    ),
                ),
                (
                    "body",
                    models.JSONField(
                        default=dict,
                        help_text="Document body in extended JSON",
                    ),
                ),
            ],
            options={
                "db_table": "core_stored_document",
                "ordering": ["id"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("collection", "doc_id"),
                        name="unique_document_per_collection",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="DocumentKey",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("collection", models.CharField(max_length=64)),
                ("path", models.CharField(max_length=255)),
                ("value", models.TextField()),
                (
                    "document",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="keys",
                        to="core.storeddocument",
                    ),
                ),
            ],
            options={
                "db_table": "core_document_key",
                "indexes": [
                    models.Index(
                        fields=["collection", "path", "value"],
                        name="document_key_lookup",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="DocumentUniqueKey",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("collection", models.CharField(max_length=64)),
                ("index", models.CharField(max_length=255)),
                ("value", models.TextField()),
                (
                    "document",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="unique_keys",
                        to="core.storeddocument",
                    ),
                ),
            ],
            options={
                "db_table": "core_document_unique_key",
                "constraints": [
                    models.UniqueConstraint(
                        fields=("collection", "index", "value"),
                        name="unique_index_key_per_collection",
                    )
                ],
            },
        ),
    ]
