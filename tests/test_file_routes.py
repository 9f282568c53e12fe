"""Tests for the /api file endpoints."""

import asyncio
import io
import zipfile
from unittest.mock import MagicMock

import httpx
import pytest

# Large enough that five concurrent streams each need many 1 MiB reads;
# sparse, so the test does not write it to disk.
LARGE_FILE_SIZE = 24 * 1024 * 1024


class TestListFiles:
    """GET /api/files"""

    def test_list_root(self, client, sample_tree):
        response = client.get('/api/files')

        assert response.status_code == 200
        data = response.json()
        assert data['path'] == ''
        files = {entry['name']: entry for entry in data['files']}
        assert files['notes.txt']['isDirectory'] is False
        assert files['notes.txt']['kind'] == 'file'
        assert files['notes.txt']['size'] == 11
        assert files['docs']['isDirectory'] is True
        assert files['docs']['size'] == 12
        assert files['docs']['path'] == 'docs'

    def test_list_empty_directory(self, client, shared_root):
        (shared_root / 'fresh').mkdir()

        response = client.get('/api/files', params={'path': 'fresh'})

        assert response.status_code == 200
        assert response.json() == {'path': 'fresh', 'files': []}

    def test_list_missing_directory_is_json_404(self, client, shared_root):
        response = client.get('/api/files', params={'path': 'missing'})

        assert response.status_code == 404
        assert response.json()['code'] == 'NOT_FOUND'

    def test_traversal_lists_root(self, client, sample_tree):
        response = client.get('/api/files', params={'path': '../../../'})

        assert response.status_code == 200
        assert {entry['name'] for entry in response.json()['files']} == {'notes.txt', 'docs', 'empty'}

    def test_escape_is_json_403_without_absolute_path(self, client, shared_root, monkeypatch):
        monkeypatch.setattr(
            'fileserver.path_resolver.normalize_relative_path',
            lambda relative_path: '../elsewhere'
        )

        response = client.get('/api/files', params={'path': 'x'})

        assert response.status_code == 403
        assert response.json() == {'detail': 'Access denied', 'code': 'ACCESS_DENIED'}
        assert str(shared_root) not in response.text

    def test_nul_byte_is_json_400(self, client, shared_root):
        response = client.get('/api/files', params={'path': 'a\x00b'})

        assert response.status_code == 400
        assert response.json() == {'detail': 'Invalid path', 'code': 'BAD_REQUEST'}

    def test_request_id_header(self, client, shared_root):
        response = client.get('/api/files')

        assert response.headers.get('X-Request-ID')


class TestUpload:
    """POST /api/upload"""

    def test_nested_upload(self, client, shared_root):
        response = client.post(
            '/api/upload',
            data={'path': 'docs'},
            files=[('files', ('photos@@@trip@@@img.jpg', b'jpegdata', 'image/jpeg'))]
        )

        assert response.status_code == 200
        assert response.json()['message'] == 'Files uploaded successfully!'
        assert response.json()['uploaded'] == 1
        assert (shared_root / 'docs' / 'photos' / 'trip' / 'img.jpg').read_bytes() == b'jpegdata'

    def test_folder_upload_with_several_files(self, client, shared_root):
        response = client.post(
            '/api/upload',
            data={'path': ''},
            files=[
                ('files', ('album@@@1.jpg', b'one')),
                ('files', ('album@@@2.jpg', b'two')),
                ('files', ('album@@@raw@@@3.cr2', b'three')),
            ]
        )

        assert response.status_code == 200
        assert response.json()['uploaded'] == 3
        assert sorted(p.name for p in (shared_root / 'album').rglob('*') if p.is_file()) == [
            '1.jpg', '2.jpg', '3.cr2'
        ]

    def test_escaping_file_is_skipped(self, client, shared_root):
        response = client.post(
            '/api/upload',
            data={'path': ''},
            files=[
                ('files', ('..@@@escape.txt', b'bad')),
                ('files', ('fine.txt', b'good')),
            ]
        )

        assert response.status_code == 200
        assert response.json()['uploaded'] == 1
        assert response.json()['skipped'] == ['../escape.txt']
        assert (shared_root / 'fine.txt').read_bytes() == b'good'
        assert not (shared_root.parent / 'escape.txt').exists()

    def test_no_files_is_bad_request(self, client):
        response = client.post('/api/upload', data={'path': 'docs'})

        assert response.status_code == 400
        assert response.json()['code'] == 'BAD_REQUEST'

    def test_relocation_failure_is_500(self, client, shared_root, monkeypatch):
        async def failing_replace(src, dst, *args, **kwargs):
            raise OSError(28, 'No space left on device')

        monkeypatch.setattr('aiofiles.os.replace', failing_replace)

        response = client.post(
            '/api/upload',
            data={'path': ''},
            files=[('files', ('a.txt', b'a'))]
        )

        assert response.status_code == 500
        assert response.json()['detail'] == 'Error processing uploads'
        assert response.json()['failed'] == ['a.txt']


class TestDownload:
    """GET /api/download"""

    def test_download_file(self, client, sample_tree):
        response = client.get('/api/download', params={'path': 'docs/sub/b.txt'})

        assert response.status_code == 200
        assert response.content == b'bbbbbbb'
        assert response.headers['content-type'] == 'application/octet-stream'
        assert response.headers['content-length'] == '7'
        assert response.headers['content-disposition'] == 'attachment; filename="b.txt"'
        assert response.headers['x-content-type-options'] == 'nosniff'

    def test_counter_is_released_after_download(self, app, client, sample_tree):
        client.get('/api/download', params={'path': 'notes.txt'})

        assert app.state.context.counter.active == 0

    def test_empty_path_is_bad_request(self, client):
        response = client.get('/api/download?path=')

        assert response.status_code == 400
        assert response.text == 'No file specified'

    def test_missing_path_param_is_bad_request(self, client):
        response = client.get('/api/download')

        assert response.status_code == 400

    def test_missing_file_is_404(self, client, shared_root):
        response = client.get('/api/download', params={'path': 'ghost.txt'})

        assert response.status_code == 404
        assert response.text == 'File not found'

    def test_nul_byte_is_400(self, client, sample_tree):
        response = client.get('/api/download', params={'path': 'notes.txt\x00'})

        assert response.status_code == 400
        assert response.text == 'Invalid path'

    def test_escape_is_403_without_stat(self, client, shared_root, monkeypatch):
        stat_spy = MagicMock()
        monkeypatch.setattr('aiofiles.os.stat', stat_spy)
        monkeypatch.setattr(
            'fileserver.path_resolver.normalize_relative_path',
            lambda relative_path: '../../etc/passwd'
        )

        response = client.get('/api/download', params={'path': 'passwd'})

        assert response.status_code == 403
        assert response.text == 'Access denied'
        stat_spy.assert_not_called()


class TestDownloadZip:
    """GET /api/download-zip"""

    def test_archive_entry_names(self, client, shared_root):
        folder = shared_root / 'folder'
        (folder / 'sub').mkdir(parents=True)
        (folder / 'a.txt').write_bytes(b'a')
        (folder / 'sub' / 'b.txt').write_bytes(b'b')

        response = client.get('/api/download-zip', params={'path': 'folder'})

        assert response.status_code == 200
        assert response.headers['content-type'] == 'application/zip'
        assert response.headers['content-disposition'] == 'attachment; filename="folder.zip"'
        with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
            assert sorted(archive.namelist()) == ['a.txt', 'sub/b.txt']

    def test_empty_path_is_bad_request(self, client):
        response = client.get('/api/download-zip?path=')

        assert response.status_code == 400
        assert response.text == 'No folder specified'

    def test_shared_root_is_archive_zip(self, client, sample_tree):
        response = client.get('/api/download-zip', params={'path': '.'})

        assert response.status_code == 200
        assert response.headers['content-disposition'] == 'attachment; filename="archive.zip"'
        with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
            assert 'notes.txt' in archive.namelist()
            assert 'docs/sub/b.txt' in archive.namelist()

    def test_missing_folder_is_404(self, client, shared_root):
        response = client.get('/api/download-zip', params={'path': 'nope'})

        assert response.status_code == 404

    def test_counter_is_released_after_archive(self, app, client, sample_tree):
        client.get('/api/download-zip', params={'path': 'docs'})

        assert app.state.context.counter.active == 0


class TestDelete:
    """DELETE /api/files"""

    def test_delete_folder(self, client, sample_tree):
        response = client.delete('/api/files', params={'path': 'docs'})

        assert response.status_code == 200
        assert response.text == 'File deleted'
        assert not (sample_tree / 'docs').exists()

    def test_delete_missing_is_success(self, client, shared_root):
        response = client.delete('/api/files', params={'path': 'never/was/here'})

        assert response.status_code == 200

    def test_delete_below_a_file_is_success(self, client, sample_tree):
        response = client.delete('/api/files', params={'path': 'notes.txt/child'})

        assert response.status_code == 200
        assert response.text == 'File deleted'

    def test_delete_nul_byte_is_400(self, client, sample_tree):
        response = client.delete('/api/files', params={'path': 'notes.txt\x00'})

        assert response.status_code == 400
        assert (sample_tree / 'notes.txt').exists()

    def test_delete_without_path_is_bad_request(self, client):
        response = client.delete('/api/files')

        assert response.status_code == 400
        assert response.text == 'No file specified'

    def test_delete_root_is_forbidden_as_text(self, client, sample_tree):
        response = client.delete('/api/files', params={'path': '..'})

        assert response.status_code == 403
        assert response.text == 'Access denied'
        assert (sample_tree / 'notes.txt').exists()


@pytest.mark.asyncio
async def test_concurrent_downloads_and_listings(app, shared_root):
    folder = shared_root / 'movies'
    folder.mkdir()
    with open(folder / 'film.mkv', 'wb') as f:
        f.truncate(LARGE_FILE_SIZE)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url='http://testserver') as http:
        downloads = [
            http.get('/api/download', params={'path': 'movies/film.mkv'})
            for _ in range(5)
        ]
        listings = [http.get('/api/files', params={'path': ''}) for _ in range(5)]

        responses = await asyncio.gather(*downloads, *listings)

    for response in responses[:5]:
        assert response.status_code == 200
        assert len(response.content) == LARGE_FILE_SIZE
    for response in responses[5:]:
        assert response.status_code == 200
        assert [entry['name'] for entry in response.json()['files']] == ['movies']

    assert app.state.context.counter.active == 0
