"""Tests for storage, search ranking, settings and logging helpers."""
import io
import json
import logging
import sys
import pytest
from PIL import Image
from backend.blueprints.search import escape_like, rank
from backend.logging_config import StructuredFormatter, log_event
from backend.services.media_storage import MediaStorageService, MEDIA_EXTENSIONS, IMAGE_ONLY_EXTENSIONS
from backend.settings import Settings
from shared.utils import CorruptedImageError, generate_thumbnail, is_image_filename, file_extension
from shared.validation import ValidationError


def image_bytes(size, mode='RGB', fmt='PNG'):
    buffer = io.BytesIO()
    Image.new(mode, size).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def storage(tmp_path):
    return MediaStorageService(tmp_path / 'media', container_name='test', retry_attempts=1)


class TestMediaStorage:

    def test_save_open_delete(self, storage):
        name = storage.save(b'x' * 20000, 'versions/1', 'clip.mov')
        assert name.startswith('versions/1/')
        assert name.endswith('_clip.mov')
        assert storage.exists(name)

        obj, chunks = storage.open_stream(name)
        assert obj.size == 20000
        assert b''.join(chunks) == b'x' * 20000

        assert storage.delete(name, None, 'versions/1/missing.mov') == 1
        assert not storage.exists(name)
        assert storage.open_stream(name) == (None, None)

    def test_names_are_unique(self, storage):
        first = storage.save(b'a', 'notes/n1', 'a.txt')
        second = storage.save(b'b', 'notes/n1', 'a.txt')
        assert first != second

    def test_save_with_thumbnail(self, storage):
        name, thumb = storage.save_with_thumbnail(image_bytes((1920, 1080)), 'versions/2', 'plate.png')
        assert thumb.startswith('versions/2/thumbnails/')
        assert thumb.endswith('_plate_thumb.png')
        obj, chunks = storage.open_stream(thumb)
        assert Image.open(io.BytesIO(b''.join(chunks))).size == (320, 180)

    def test_corrupted_image_leaves_nothing_behind(self, storage, tmp_path):
        with pytest.raises(CorruptedImageError):
            storage.save_with_thumbnail(b'garbage', 'versions/3', 'plate.jpg')
        assert not any((tmp_path / 'media' / 'test').rglob('*plate*'))

    def test_non_images_get_no_thumbnail(self, storage):
        assert storage.save_with_thumbnail(b'garbage', 'versions/4', 'clip.mov')[1] is None

    @pytest.mark.parametrize('filename, expected', [
        ('frame.png', 'frame.png'),
        ('My Clip (final).mov', 'My_Clip__final_.mov'),
        ('../../etc/passwd.txt', 'passwd.txt'),
        ('C:\\renders\\shot.exr', 'shot.exr'),
    ])
    def test_check_upload_cleans_names(self, filename, expected):
        assert MediaStorageService.check_upload(filename, MEDIA_EXTENSIONS) == expected

    @pytest.mark.parametrize('filename', ['', 'payload.exe', 'archive', 'clip.mov.sh'])
    def test_check_upload_rejects(self, filename):
        with pytest.raises(ValidationError):
            MediaStorageService.check_upload(filename, MEDIA_EXTENSIONS)

    def test_image_only_uploads(self):
        assert MediaStorageService.check_upload('hero.webp', IMAGE_ONLY_EXTENSIONS) == 'hero.webp'
        with pytest.raises(ValidationError):
            MediaStorageService.check_upload('hero.exr', IMAGE_ONLY_EXTENSIONS)


class TestThumbnails:

    def test_keeps_aspect_ratio(self):
        data, ext = generate_thumbnail(image_bytes((1000, 200)), (320, 180))
        assert ext == 'png'
        assert Image.open(io.BytesIO(data)).size == (320, 64)

    def test_jpeg_output_for_other_formats(self):
        data, ext = generate_thumbnail(image_bytes((64, 64), mode='P', fmt='GIF'))
        assert ext == 'jpg'
        assert Image.open(io.BytesIO(data)).format == 'JPEG'

    def test_small_images_are_not_enlarged(self):
        data, _ = generate_thumbnail(image_bytes((100, 50)))
        assert Image.open(io.BytesIO(data)).size == (100, 50)

    def test_corrupted(self):
        with pytest.raises(CorruptedImageError):
            generate_thumbnail(b'definitely not an image')

    def test_extension_helpers(self):
        assert file_extension('Shot.EXR') == 'exr'
        assert file_extension('README') == ''
        assert is_image_filename('poster.JPG')
        assert not is_image_filename('clip.mov')


class TestSearchHelpers:

    def test_escape_like(self):
        assert escape_like('100%_done') == '100\\%\\_done'
        assert escape_like('a\\b') == 'a\\\\b'

    @pytest.mark.parametrize('code, expected', [
        ('DRAGON', 3), ('dragon', 3), ('DRAGON_RIG', 2), ('RED_DRAGON', 1), (None, 1),
    ])
    def test_rank(self, code, expected):
        assert rank(code, 'Dragon') == expected


class TestSettings:

    def test_defaults(self):
        config = Settings(_env_file=None).to_flask_config()
        assert config['SQLALCHEMY_DATABASE_URI'] == 'sqlite:///shogunito.db'
        assert config['MAX_CONTENT_LENGTH'] == 200 * 1024 * 1024
        assert config['RATELIMIT_ENABLED'] is True
        assert config['ALLOWED_REGISTRATION_EMAILS'] == []
        assert config['THUMBNAIL_SIZE'] == (320, 180)

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv('SHOGUNITO_DATABASE_URL', 'postgresql://db/shogunito')
        monkeypatch.setenv('SHOGUNITO_LOGIN_RATE_LIMIT', '2 per minute')
        monkeypatch.setenv('SHOGUNITO_ALLOWED_REGISTRATION_EMAILS', ' A@Example.com, ,b@example.com')
        settings = Settings(_env_file=None)
        config = settings.to_flask_config()
        assert config['SQLALCHEMY_DATABASE_URI'] == 'postgresql://db/shogunito'
        assert config['LOGIN_RATE_LIMIT'] == '2 per minute'
        assert settings.registration_allowlist() == ['a@example.com', 'b@example.com']

    def test_env_file_and_unknown_keys(self, tmp_path, monkeypatch):
        env_file = tmp_path / '.env'
        env_file.write_text('SHOGUNITO_MAX_PAGE_SIZE=25\nSHOGUNITO_NOT_A_SETTING=1\nOTHER_APP_KEY=x\n')
        monkeypatch.setenv('shogunito_log_level', 'DEBUG')
        settings = Settings(_env_file=str(env_file))
        assert settings.max_page_size == 25
        assert settings.log_level == 'DEBUG'
        assert Settings.model_config['env_prefix'] == 'SHOGUNITO_'
        assert Settings.model_config['extra'] == 'ignore'


class TestLogging:

    def test_structured_formatter(self):
        record = logging.LogRecord('backend.test', logging.WARNING, __file__, 1, 'Shot %s deleted', ('SH010',), None)
        record.extra_fields = {'user_id': 7, 'action': 'delete'}
        entry = json.loads(StructuredFormatter().format(record))
        assert entry['message'] == 'Shot SH010 deleted'
        assert entry['level'] == 'WARNING'
        assert entry['logger'] == 'backend.test'
        assert entry['user_id'] == 7
        assert entry['action'] == 'delete'
        assert 'timestamp' in entry

    def test_exception_included(self):
        try:
            raise RuntimeError('boom')
        except RuntimeError:
            record = logging.LogRecord('backend.test', logging.ERROR, __file__, 1, 'failed', (), sys.exc_info())
        entry = json.loads(StructuredFormatter().format(record))
        assert 'RuntimeError: boom' in entry['exception']

    def test_log_event_attaches_fields(self, caplog):
        logger = logging.getLogger('backend.audit_test')
        with caplog.at_level(logging.INFO, logger='backend.audit_test'):
            log_event(logger, 'Project created', action='create', resource='project', resource_id=3)
        record = caplog.records[-1]
        assert record.getMessage() == 'Project created'
        assert record.extra_fields == {'action': 'create', 'resource': 'project', 'resource_id': 3}

    def test_requests_are_logged(self, client, caplog):
        with caplog.at_level(logging.INFO, logger='shogunito.requests'):
            client.get('/api/health')
        record = next(r for r in caplog.records if r.name == 'shogunito.requests')
        assert record.extra_fields['path'] == '/api/health'
        assert record.extra_fields['status'] == 200
