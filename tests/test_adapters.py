"""
Tests for the command renderer and S3 uploader adapters.
"""

import json
import shlex
import sys
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from render_runtime.adapters import CommandRenderer, S3Uploader
from render_runtime.config import RenderConfig, UploadConfig
from render_runtime.errors import RenderError, UploadError
from render_runtime.pipeline import Renderer, Uploader

PYTHON = shlex.quote(sys.executable)


class TestCommandRenderer:
    """Test the subprocess renderer."""

    def test_satisfies_protocol(self):
        assert isinstance(CommandRenderer(), Renderer)

    def test_build_command(self, tmp_path):
        renderer = CommandRenderer(RenderConfig(entry="src/index.ts", composition="Quiz"), work_dir=tmp_path)

        command = renderer.build_command(
            job_id="abc", output=tmp_path / "video-abc.mp4", props_file=tmp_path / "p.json", concurrency=4
        )

        assert command[:5] == ["npx", "remotion", "render", "src/index.ts", "Quiz"]
        assert str(tmp_path / "video-abc.mp4") in command
        assert f"--props={tmp_path / 'p.json'}" in command
        assert "--concurrency=4" in command

    def test_output_path(self, tmp_path):
        assert CommandRenderer(work_dir=tmp_path).output_path("abc") == tmp_path / "video-abc.mp4"

    @pytest.mark.asyncio
    async def test_render_success(self, tmp_path):
        script = "import shutil, sys; shutil.copy(sys.argv[1], sys.argv[2])"
        config = RenderConfig(command=f"{PYTHON} -c {shlex.quote(script)} {{props}} {{output}}")
        renderer = CommandRenderer(config, work_dir=tmp_path)

        path = await renderer.render({"title": "Quiz"}, job_id="abc", concurrency=4)

        assert path == tmp_path / "video-abc.mp4"
        assert json.loads(path.read_text()) == {"title": "Quiz"}
        # Props file is cleaned up
        assert not (tmp_path / "props-abc.json").exists()

    @pytest.mark.asyncio
    async def test_render_failure_includes_stderr_tail(self, tmp_path):
        script = "import sys; sys.stderr.write('composition MainVideo not found'); sys.exit(3)"
        config = RenderConfig(command=f"{PYTHON} -c {shlex.quote(script)} {{output}}")
        renderer = CommandRenderer(config, work_dir=tmp_path)

        with pytest.raises(RenderError) as exc_info:
            await renderer.render({}, job_id="abc", concurrency=1)

        assert "code 3" in exc_info.value.message
        assert "composition MainVideo not found" in exc_info.value.message
        assert exc_info.value.context.job_id == "abc"

    @pytest.mark.asyncio
    async def test_render_without_output(self, tmp_path):
        config = RenderConfig(command=f"{PYTHON} -c pass {{output}}")
        renderer = CommandRenderer(config, work_dir=tmp_path)

        with pytest.raises(RenderError, match="no output"):
            await renderer.render({}, job_id="abc", concurrency=1)

    @pytest.mark.asyncio
    async def test_missing_executable(self, tmp_path):
        config = RenderConfig(command="definitely-not-a-render-binary {output}")
        renderer = CommandRenderer(config, work_dir=tmp_path)

        with pytest.raises(RenderError, match="Could not start"):
            await renderer.render({}, job_id="abc", concurrency=1)


class TestS3Uploader:
    """Test the S3 uploader with a mocked boto3 client."""

    def test_satisfies_protocol(self):
        assert isinstance(S3Uploader(), Uploader)

    @pytest.mark.asyncio
    async def test_upload(self, tmp_path):
        artifact = tmp_path / "video-abc.mp4"
        artifact.write_bytes(b"data")
        client = MagicMock()
        uploader = S3Uploader(
            UploadConfig(bucket="renders", public_endpoint="http://127.0.0.1:9000"), client=client
        )

        url = await uploader.upload(artifact, resource_kind="video", public_id="job-abc")

        assert url == "http://127.0.0.1:9000/renders/videos/job-abc.mp4"
        client.upload_file.assert_called_once_with(
            str(artifact), "renders", "videos/job-abc.mp4", ExtraArgs={"ContentType": "video/mp4"}
        )

    def test_default_aws_url(self):
        uploader = S3Uploader(UploadConfig(bucket="renders", region="eu-west-1"), client=MagicMock())

        assert uploader.object_url("videos/x.mp4") == "https://renders.s3.eu-west-1.amazonaws.com/videos/x.mp4"

    @pytest.mark.asyncio
    async def test_client_error_becomes_upload_error(self, tmp_path):
        artifact = tmp_path / "video-abc.mp4"
        artifact.write_bytes(b"data")
        client = MagicMock()
        client.upload_file.side_effect = ClientError(
            {"Error": {"Code": "NoSuchBucket", "Message": "The specified bucket does not exist"}},
            "PutObject",
        )
        uploader = S3Uploader(UploadConfig(bucket="missing"), client=client)

        with pytest.raises(UploadError) as exc_info:
            await uploader.upload(artifact, resource_kind="video", public_id="job-abc")

        assert "NoSuchBucket" in exc_info.value.message
        assert exc_info.value.context.stage == "uploading"
