import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import server.apps.drive.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Entry',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=255)),
                ('kind', models.CharField(choices=[('file', 'File'), ('folder', 'Folder')], max_length=16)),
                ('path', server.apps.drive.models.MaterializedPathField(help_text='Absolute path, e.g. /Docs/report.pdf', max_length=4096)),
                ('size_bytes', models.BigIntegerField(default=0, help_text='File size in bytes')),
                ('blob_key', models.CharField(blank=True, default='', help_text='Key of the content in the blob store', max_length=1024)),
                ('mime_type', models.CharField(blank=True, default='', max_length=255)),
                ('original_name', models.CharField(blank=True, default='', help_text='File name as supplied by the uploader', max_length=255)),
                ('is_deleted', models.BooleanField(db_index=True, default=False)),
                ('deleted_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='entries', to=settings.AUTH_USER_MODEL)),
                ('parent', models.ForeignKey(blank=True, help_text='Containing folder, empty for root-level entries', null=True, on_delete=django.db.models.deletion.PROTECT, related_name='children', to='drive.entry')),
            ],
            options={
                'verbose_name': 'Entry',
                'verbose_name_plural': 'Entries',
                'indexes': [
                    models.Index(fields=['owner', 'parent', 'is_deleted'], name='drive_owner_parent_idx'),
                    models.Index(fields=['owner', 'path', 'is_deleted'], name='drive_owner_path_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('is_deleted', False)), fields=('owner', 'parent', 'name', 'kind'), name='drive_active_sibling_name_unique'),
                    models.UniqueConstraint(condition=models.Q(('is_deleted', False), ('parent__isnull', True)), fields=('owner', 'name', 'kind'), name='drive_active_root_name_unique'),
                    models.CheckConstraint(condition=models.Q(('size_bytes__gte', 0)), name='drive_size_bytes_non_negative'),
                    models.CheckConstraint(condition=models.Q(('kind', 'file'), ('size_bytes', 0), _connector='OR'), name='drive_folder_size_zero'),
                ],
            },
        ),
        migrations.CreateModel(
            name='UserQuota',
            fields=[
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, primary_key=True, related_name='quota', serialize=False, to=settings.AUTH_USER_MODEL)),
                ('used_bytes', models.BigIntegerField(default=0, help_text='Currently used storage in bytes')),
            ],
            options={
                'verbose_name': 'User Quota',
                'verbose_name_plural': 'User Quotas',
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('used_bytes__gte', 0)), name='drive_used_bytes_non_negative'),
                ],
            },
        ),
    ]
