"""Interchangeable render backends for the edit pipeline.

Both variants implement :class:`RenderBackend`: ``initialize`` binds the
source bitmap, ``evaluate`` renders one frame for resolved stage parameters and
a geometric transform.  They share every formula and differ only in where the
per-pixel work happens (a GLSL fragment pass versus a JIT-compiled loop).
"""

from __future__ import annotations

import ctypes
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import numpy as np

from ..config import render_backend_preference
from ..errors import BackendInitializationError
from .bitmap import Bitmap, PixelBuffer
from .filters import render_pixels
from .geometry import GeometricTransform
from .stage_resolver import StageParameters

if TYPE_CHECKING:  # pragma: no cover - import for typing only
    from PySide6.QtGui import QOffscreenSurface, QOpenGLContext

_LOGGER = logging.getLogger(__name__)


class RenderBackend(ABC):
    """Capability surface shared by every pixel-evaluation strategy."""

    tier_name: str = "unknown"
    """Human readable tier label (e.g. ``"OpenGL"`` or ``"CPU"``)."""

    supports_realtime: bool = False
    """Whether the backend is fast enough to render on the UI thread."""

    def __init__(self) -> None:
        self._source: Bitmap | None = None

    @property
    def source(self) -> Bitmap | None:
        return self._source

    @abstractmethod
    def initialize(self, source: Bitmap) -> None:
        """Bind *source* for subsequent :meth:`evaluate` calls."""

    @abstractmethod
    def evaluate(self, stages: StageParameters, transform: GeometricTransform) -> PixelBuffer:
        """Render a new output buffer for *stages* and *transform*."""

    def dispose(self) -> None:
        """Release any resources tied to the bound source."""

        self._source = None

    def _require_source(self, transform: GeometricTransform) -> Bitmap:
        source = self._source
        if source is None:
            raise RuntimeError(f"{self.tier_name} backend used before initialize()")
        if (transform.source_width, transform.source_height) != (source.width, source.height):
            raise ValueError(
                "transform was resolved for a "
                f"{transform.source_width}x{transform.source_height} source, "
                f"bound source is {source.width}x{source.height}"
            )
        return source


class CpuRenderBackend(RenderBackend):
    """Scalar per-pixel loop compiled with Numba."""

    tier_name = "CPU"
    supports_realtime = False

    def initialize(self, source: Bitmap) -> None:
        self._source = source

    def evaluate(self, stages: StageParameters, transform: GeometricTransform) -> PixelBuffer:
        source = self._require_source(transform)
        return PixelBuffer(render_pixels(source.pixels, stages, transform))


_VERTEX_SHADER = """
#version 330 core
layout (location = 0) in vec2 a_position;
void main() {
    gl_Position = vec4(a_position, 0.0, 1.0);
}
"""

_FRAGMENT_SHADER = """
#version 330 core
out vec4 FragColor;
uniform sampler2D uSource;
uniform ivec2 uCropOrigin;
uniform ivec2 uCropSize;
uniform int uRotationSteps;
uniform int uFlipHorizontal;
uniform int uFlipVertical;
uniform int uUseExposure;
uniform float uExposureGain;
uniform int uUseBrightnessContrast;
uniform float uBrightnessOffset;
uniform float uContrastFactor;
uniform int uUseHsl;
uniform float uHueShift;
uniform float uSaturationScale;
uniform float uLightnessShift;

ivec2 map_output_to_crop(ivec2 p) {
    ivec2 c = p;
    if (uRotationSteps == 1) {
        c = ivec2(p.y, uCropSize.y - 1 - p.x);
    } else if (uRotationSteps == 2) {
        c = ivec2(uCropSize.x - 1 - p.x, uCropSize.y - 1 - p.y);
    } else if (uRotationSteps == 3) {
        c = ivec2(uCropSize.x - 1 - p.y, p.x);
    }
    if (uFlipHorizontal != 0) {
        c.x = uCropSize.x - 1 - c.x;
    }
    if (uFlipVertical != 0) {
        c.y = uCropSize.y - 1 - c.y;
    }
    return c;
}

vec3 rgb2hsl(vec3 c) {
    float maxVal = max(c.r, max(c.g, c.b));
    float minVal = min(c.r, min(c.g, c.b));
    float l = (maxVal + minVal) / 2.0;
    if (maxVal == minVal) {
        return vec3(0.0, 0.0, l);
    }
    float d = maxVal - minVal;
    float s = l > 0.5 ? d / (2.0 - maxVal - minVal) : d / (maxVal + minVal);
    float h;
    if (maxVal == c.r) {
        h = (c.g - c.b) / d + (c.g < c.b ? 6.0 : 0.0);
    } else if (maxVal == c.g) {
        h = (c.b - c.r) / d + 2.0;
    } else {
        h = (c.r - c.g) / d + 4.0;
    }
    return vec3(h / 6.0, s, l);
}

float hue2rgb(float p, float q, float t) {
    if (t < 0.0) t += 1.0;
    if (t > 1.0) t -= 1.0;
    if (t < 1.0 / 6.0) return p + (q - p) * 6.0 * t;
    if (t < 1.0 / 2.0) return q;
    if (t < 2.0 / 3.0) return p + (q - p) * (2.0 / 3.0 - t) * 6.0;
    return p;
}

vec3 hsl2rgb(vec3 hsl) {
    if (hsl.y == 0.0) {
        return vec3(hsl.z);
    }
    float q = hsl.z < 0.5 ? hsl.z * (1.0 + hsl.y) : hsl.z + hsl.y - hsl.z * hsl.y;
    float p = 2.0 * hsl.z - q;
    return vec3(
        hue2rgb(p, q, hsl.x + 1.0 / 3.0),
        hue2rgb(p, q, hsl.x),
        hue2rgb(p, q, hsl.x - 1.0 / 3.0)
    );
}

void main() {
    ivec2 crop = map_output_to_crop(ivec2(gl_FragCoord.xy));
    vec4 texel = texelFetch(uSource, uCropOrigin + crop, 0);
    vec3 color = texel.rgb;

    if (uUseExposure != 0) {
        color = clamp(color * uExposureGain, 0.0, 1.0);
    }
    if (uUseBrightnessContrast != 0) {
        color = clamp(uContrastFactor * (color + uBrightnessOffset - 0.5) + 0.5, 0.0, 1.0);
    }
    if (uUseHsl != 0) {
        vec3 hsl = rgb2hsl(color);
        hsl.x = mod(hsl.x + uHueShift, 1.0);
        hsl.y = clamp(hsl.y * uSaturationScale, 0.0, 1.0);
        hsl.z = clamp(hsl.z + uLightnessShift, 0.0, 1.0);
        color = clamp(hsl2rgb(hsl), 0.0, 1.0);
    }
    FragColor = vec4(color, texel.a);
}
"""

_UNIFORMS = (
    "uSource",
    "uCropOrigin",
    "uCropSize",
    "uRotationSteps",
    "uFlipHorizontal",
    "uFlipVertical",
    "uUseExposure",
    "uExposureGain",
    "uUseBrightnessContrast",
    "uBrightnessOffset",
    "uContrastFactor",
    "uUseHsl",
    "uHueShift",
    "uSaturationScale",
    "uLightnessShift",
)


def _compile_shader(gl: Any, source: str, shader_type: int) -> int:
    shader = gl.glCreateShader(shader_type)
    gl.glShaderSource(shader, [source.encode("utf-8")])
    gl.glCompileShader(shader)
    if not gl.glGetShaderiv(shader, gl.GL_COMPILE_STATUS):
        log = gl.glGetShaderInfoLog(shader).decode("utf-8", errors="ignore")
        gl.glDeleteShader(shader)
        raise RuntimeError(f"Shader compile error: {log}")
    return shader


def _link_program(gl: Any, vertex_source: str, fragment_source: str) -> int:
    vertex = _compile_shader(gl, vertex_source, gl.GL_VERTEX_SHADER)
    fragment = _compile_shader(gl, fragment_source, gl.GL_FRAGMENT_SHADER)
    program = gl.glCreateProgram()
    gl.glAttachShader(program, vertex)
    gl.glAttachShader(program, fragment)
    gl.glLinkProgram(program)
    linked = gl.glGetProgramiv(program, gl.GL_LINK_STATUS)
    gl.glDeleteShader(vertex)
    gl.glDeleteShader(fragment)
    if not linked:
        log = gl.glGetProgramInfoLog(program).decode("utf-8", errors="ignore")
        gl.glDeleteProgram(program)
        raise RuntimeError(f"Program link error: {log}")
    return program


def _surface_format() -> Any:
    from PySide6.QtGui import QSurfaceFormat

    format_hint = QSurfaceFormat()
    format_hint.setVersion(3, 3)
    format_hint.setProfile(QSurfaceFormat.OpenGLContextProfile.CoreProfile)
    format_hint.setRenderableType(QSurfaceFormat.RenderableType.OpenGL)
    return format_hint


class OpenGlRenderBackend(RenderBackend):
    """Single full-screen fragment pass on an offscreen OpenGL 3.3 context.

    Each instance owns its context, source texture and framebuffer, so GPU
    resources are never shared between photo sessions.
    """

    tier_name = "OpenGL"
    supports_realtime = True

    def __init__(self) -> None:
        super().__init__()
        self._context: QOpenGLContext | None = None
        self._surface: QOffscreenSurface | None = None
        self._gl: Any = None
        self._program = 0
        self._vertex_array = 0
        self._vertex_buffer = 0
        self._source_texture = 0
        self._target_texture = 0
        self._framebuffer = 0
        self._target_size = (0, 0)
        self._uniforms: dict[str, int] = {}

    @classmethod
    def is_available(cls) -> bool:
        """Return ``True`` if an offscreen OpenGL 3.3 context can be created."""

        try:
            from PySide6.QtGui import QGuiApplication, QOffscreenSurface, QOpenGLContext
            from OpenGL import GL  # noqa: F401
        except ImportError:
            return False

        # Offscreen surfaces need a running QGuiApplication.
        if QGuiApplication.instance() is None:
            return False

        context = QOpenGLContext()
        try:
            context.setFormat(_surface_format())
            if not context.create():
                return False
            surface = QOffscreenSurface()
            surface.setFormat(context.format())
            surface.create()
            if not surface.isValid():
                return False
            if not context.makeCurrent(surface):
                return False
            version = context.format().version()
            return tuple(version) >= (3, 3)
        except Exception:
            return False
        finally:
            context.doneCurrent()

    # ------------------------------------------------------------------
    def initialize(self, source: Bitmap) -> None:
        try:
            self._create_context()
            self._create_pipeline()
            self._upload_source(source)
        except Exception as exc:
            self.dispose()
            raise BackendInitializationError(f"OpenGL backend failed to initialise: {exc}") from exc
        finally:
            if self._context is not None:
                self._context.doneCurrent()
        self._source = source

    def _create_context(self) -> None:
        from PySide6.QtGui import QOffscreenSurface, QOpenGLContext
        from OpenGL import GL as gl

        context = QOpenGLContext()
        context.setFormat(_surface_format())
        if not context.create():
            raise RuntimeError("Failed to create OpenGL context")
        self._context = context

        surface = QOffscreenSurface()
        surface.setFormat(context.format())
        surface.create()
        if not surface.isValid():
            raise RuntimeError("OpenGL offscreen surface is invalid")
        self._surface = surface

        self._make_current()
        self._gl = gl

    def _make_current(self) -> None:
        if self._context is None or self._surface is None:
            raise RuntimeError("OpenGL context has not been created")
        if not self._context.makeCurrent(self._surface):
            raise RuntimeError("Failed to make OpenGL context current")

    def _create_pipeline(self) -> None:
        gl = self._gl
        self._program = _link_program(gl, _VERTEX_SHADER, _FRAGMENT_SHADER)
        self._uniforms = {
            name: gl.glGetUniformLocation(self._program, name) for name in _UNIFORMS
        }

        # Full-screen triangle strip in normalised device coordinates.
        vertices = np.array([-1.0, -1.0, 1.0, -1.0, -1.0, 1.0, 1.0, 1.0], dtype=np.float32)
        self._vertex_array = int(gl.glGenVertexArrays(1))
        self._vertex_buffer = int(gl.glGenBuffers(1))
        gl.glBindVertexArray(self._vertex_array)
        gl.glBindBuffer(gl.GL_ARRAY_BUFFER, self._vertex_buffer)
        gl.glBufferData(gl.GL_ARRAY_BUFFER, vertices.nbytes, vertices, gl.GL_STATIC_DRAW)
        gl.glEnableVertexAttribArray(0)
        gl.glVertexAttribPointer(0, 2, gl.GL_FLOAT, gl.GL_FALSE, 2 * 4, ctypes.c_void_p(0))
        gl.glBindBuffer(gl.GL_ARRAY_BUFFER, 0)
        gl.glBindVertexArray(0)

    def _upload_source(self, source: Bitmap) -> None:
        gl = self._gl
        texture = int(gl.glGenTextures(1))
        if texture == 0:
            raise RuntimeError("Failed to allocate source texture")
        self._source_texture = texture
        gl.glBindTexture(gl.GL_TEXTURE_2D, texture)
        # Sampling uses texelFetch, nearest filtering keeps the texture complete.
        gl.glTexParameteri(gl.GL_TEXTURE_2D, gl.GL_TEXTURE_MIN_FILTER, gl.GL_NEAREST)
        gl.glTexParameteri(gl.GL_TEXTURE_2D, gl.GL_TEXTURE_MAG_FILTER, gl.GL_NEAREST)
        gl.glTexParameteri(gl.GL_TEXTURE_2D, gl.GL_TEXTURE_WRAP_S, gl.GL_CLAMP_TO_EDGE)
        gl.glTexParameteri(gl.GL_TEXTURE_2D, gl.GL_TEXTURE_WRAP_T, gl.GL_CLAMP_TO_EDGE)
        gl.glPixelStorei(gl.GL_UNPACK_ALIGNMENT, 1)
        gl.glTexImage2D(
            gl.GL_TEXTURE_2D,
            0,
            gl.GL_RGBA8,
            source.width,
            source.height,
            0,
            gl.GL_RGBA,
            gl.GL_UNSIGNED_BYTE,
            source.pixels.tobytes(),
        )
        gl.glBindTexture(gl.GL_TEXTURE_2D, 0)

    def _ensure_target(self, width: int, height: int) -> None:
        if self._framebuffer and self._target_size == (width, height):
            return
        gl = self._gl
        self._release_target()

        texture = int(gl.glGenTextures(1))
        gl.glBindTexture(gl.GL_TEXTURE_2D, texture)
        gl.glTexParameteri(gl.GL_TEXTURE_2D, gl.GL_TEXTURE_MIN_FILTER, gl.GL_NEAREST)
        gl.glTexParameteri(gl.GL_TEXTURE_2D, gl.GL_TEXTURE_MAG_FILTER, gl.GL_NEAREST)
        gl.glTexImage2D(
            gl.GL_TEXTURE_2D, 0, gl.GL_RGBA8, width, height, 0, gl.GL_RGBA, gl.GL_UNSIGNED_BYTE, None
        )
        gl.glBindTexture(gl.GL_TEXTURE_2D, 0)
        self._target_texture = texture

        framebuffer = int(gl.glGenFramebuffers(1))
        gl.glBindFramebuffer(gl.GL_FRAMEBUFFER, framebuffer)
        gl.glFramebufferTexture2D(
            gl.GL_FRAMEBUFFER, gl.GL_COLOR_ATTACHMENT0, gl.GL_TEXTURE_2D, texture, 0
        )
        status = gl.glCheckFramebufferStatus(gl.GL_FRAMEBUFFER)
        gl.glBindFramebuffer(gl.GL_FRAMEBUFFER, 0)
        self._framebuffer = framebuffer
        if status != gl.GL_FRAMEBUFFER_COMPLETE:
            raise RuntimeError(f"Framebuffer incomplete (status 0x{int(status):x})")
        self._target_size = (width, height)

    def _release_target(self) -> None:
        gl = self._gl
        if self._framebuffer:
            gl.glDeleteFramebuffers(1, [self._framebuffer])
            self._framebuffer = 0
        if self._target_texture:
            gl.glDeleteTextures([self._target_texture])
            self._target_texture = 0
        self._target_size = (0, 0)

    # ------------------------------------------------------------------
    def evaluate(self, stages: StageParameters, transform: GeometricTransform) -> PixelBuffer:
        self._require_source(transform)
        try:
            self._make_current()
            pixels = self._draw(stages, transform)
        except Exception as exc:
            raise BackendInitializationError(f"OpenGL evaluation failed: {exc}") from exc
        finally:
            if self._context is not None:
                self._context.doneCurrent()
        return PixelBuffer(pixels)

    def _draw(self, stages: StageParameters, transform: GeometricTransform) -> np.ndarray:
        gl = self._gl
        width, height = transform.output_size
        self._ensure_target(width, height)

        gl.glBindFramebuffer(gl.GL_FRAMEBUFFER, self._framebuffer)
        gl.glViewport(0, 0, width, height)
        gl.glDisable(gl.GL_BLEND)
        gl.glDisable(gl.GL_DEPTH_TEST)
        gl.glClearColor(0.0, 0.0, 0.0, 0.0)
        gl.glClear(gl.GL_COLOR_BUFFER_BIT)

        gl.glUseProgram(self._program)
        gl.glActiveTexture(gl.GL_TEXTURE0)
        gl.glBindTexture(gl.GL_TEXTURE_2D, self._source_texture)
        uniforms = self._uniforms
        gl.glUniform1i(uniforms["uSource"], 0)
        gl.glUniform2i(uniforms["uCropOrigin"], transform.left, transform.top)
        gl.glUniform2i(uniforms["uCropSize"], transform.crop_width, transform.crop_height)
        gl.glUniform1i(uniforms["uRotationSteps"], transform.rotation_steps)
        gl.glUniform1i(uniforms["uFlipHorizontal"], int(transform.flip_horizontal))
        gl.glUniform1i(uniforms["uFlipVertical"], int(transform.flip_vertical))
        gl.glUniform1i(uniforms["uUseExposure"], int(stages.apply_exposure))
        gl.glUniform1f(uniforms["uExposureGain"], stages.exposure_gain)
        gl.glUniform1i(uniforms["uUseBrightnessContrast"], int(stages.apply_brightness_contrast))
        gl.glUniform1f(uniforms["uBrightnessOffset"], stages.brightness_offset)
        gl.glUniform1f(uniforms["uContrastFactor"], stages.contrast_factor)
        gl.glUniform1i(uniforms["uUseHsl"], int(stages.apply_hsl))
        gl.glUniform1f(uniforms["uHueShift"], stages.hue_shift)
        gl.glUniform1f(uniforms["uSaturationScale"], stages.saturation_scale)
        gl.glUniform1f(uniforms["uLightnessShift"], stages.lightness_shift)

        gl.glBindVertexArray(self._vertex_array)
        gl.glDrawArrays(gl.GL_TRIANGLE_STRIP, 0, 4)
        gl.glBindVertexArray(0)
        gl.glBindTexture(gl.GL_TEXTURE_2D, 0)
        gl.glUseProgram(0)

        gl.glPixelStorei(gl.GL_PACK_ALIGNMENT, 1)
        data = gl.glReadPixels(0, 0, width, height, gl.GL_RGBA, gl.GL_UNSIGNED_BYTE)
        gl.glBindFramebuffer(gl.GL_FRAMEBUFFER, 0)

        raw = data.tobytes() if isinstance(data, np.ndarray) else bytes(data)
        # Framebuffer row 0 holds output row 0, matching the CPU kernel.
        return np.frombuffer(raw, dtype=np.uint8).reshape((height, width, 4)).copy()

    def dispose(self) -> None:
        context = self._context
        if context is not None and self._gl is not None:
            gl = self._gl
            try:
                self._make_current()
                self._release_target()
                if self._source_texture:
                    gl.glDeleteTextures([self._source_texture])
                if self._vertex_buffer:
                    gl.glDeleteBuffers(1, [self._vertex_buffer])
                if self._vertex_array:
                    gl.glDeleteVertexArrays(1, [self._vertex_array])
                if self._program:
                    gl.glDeleteProgram(self._program)
            except Exception as exc:  # pragma: no cover - context already lost
                _LOGGER.debug("Ignoring OpenGL cleanup failure: %s", exc)
            finally:
                context.doneCurrent()
        self._source_texture = 0
        self._vertex_buffer = 0
        self._vertex_array = 0
        self._program = 0
        self._framebuffer = 0
        self._target_texture = 0
        self._target_size = (0, 0)
        self._context = None
        self._surface = None
        super().dispose()


def preferred_backend_types(preference: str | None = None) -> list[type[RenderBackend]]:
    """Return backend classes to try, most capable first.

    ``preference`` defaults to the ``STILLBYTES_RENDER_BACKEND`` setting.  The
    CPU backend always closes the list so callers receive a usable renderer.
    """

    choice = preference or render_backend_preference()
    candidates: list[type[RenderBackend]] = []
    if choice in ("auto", "opengl"):
        if OpenGlRenderBackend.is_available():
            candidates.append(OpenGlRenderBackend)
        else:
            _LOGGER.info("OpenGL render backend unavailable on this system")
    candidates.append(CpuRenderBackend)
    return candidates


__all__ = [
    "CpuRenderBackend",
    "OpenGlRenderBackend",
    "RenderBackend",
    "preferred_backend_types",
]
