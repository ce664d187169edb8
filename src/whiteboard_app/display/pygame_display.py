"""Pygame-based canvas display and host refresh loop."""

from __future__ import annotations

import os
from typing import Optional

import numpy as np
import pygame


KEY_COMMANDS = {
    pygame.K_c: "clear",
    pygame.K_r: "reset",
    pygame.K_s: "snapshot",
    pygame.K_d: "toggle_drawing",
    pygame.K_k: "calibrate",
    pygame.K_PLUS: "more_area",
    pygame.K_EQUALS: "more_area",
    pygame.K_KP_PLUS: "more_area",
    pygame.K_MINUS: "less_area",
    pygame.K_UNDERSCORE: "less_area",
    pygame.K_KP_MINUS: "less_area",
    pygame.K_q: "quit",
    pygame.K_ESCAPE: "quit",
}


class PygameCanvasDisplay:
    """
    Window (or fullscreen surface) showing the shared canvas, with a status
    line along the bottom edge.
    """

    def __init__(self, caption: str = "Whiteboard") -> None:
        self.caption = caption
        self.screen: Optional[pygame.Surface] = None
        self._clock: Optional[pygame.time.Clock] = None
        self._font: Optional[pygame.font.Font] = None
        self._opened = False

    def open(self, size: tuple[int, int], fullscreen: bool = False, screen_index: int | None = None) -> None:
        if self._opened:
            return
        if screen_index is not None:
            os.environ["SDL_VIDEO_FULLSCREEN_DISPLAY"] = str(screen_index)
        try:
            pygame.display.init()
            pygame.font.init()
            if fullscreen:
                self.screen = pygame.display.set_mode((0, 0), pygame.FULLSCREEN)
            else:
                self.screen = pygame.display.set_mode(size, pygame.RESIZABLE)
        except pygame.error as exc:
            raise RuntimeError(
                "Pygame display init failed. Try setting SDL_VIDEODRIVER to "
                "'wayland', 'x11' or 'kmsdrm' for your session."
            ) from exc
        pygame.display.set_caption(self.caption)
        self._clock = pygame.time.Clock()
        self._font = pygame.font.Font(None, 28)
        self._opened = True

    def show(self, canvas: np.ndarray, status_text: str | None = None) -> None:
        if not self._opened or self.screen is None:
            raise RuntimeError("Display not opened")
        if canvas.ndim != 3 or canvas.shape[2] != 3:
            raise ValueError("Expected HxWx3 RGB canvas")

        surf = pygame.surfarray.make_surface(canvas.swapaxes(0, 1))
        if surf.get_size() != self.screen.get_size():
            surf = pygame.transform.smoothscale(surf, self.screen.get_size())
        self.screen.blit(surf, (0, 0))
        if status_text and self._font is not None:
            label = self._font.render(status_text, True, (255, 255, 255), (30, 30, 30))
            self.screen.blit(label, (8, self.screen.get_height() - label.get_height() - 8))
        pygame.display.flip()

    def poll_commands(self) -> list[str]:
        """Drain pending window events and translate key presses to commands."""
        if not self._opened:
            return []
        commands: list[str] = []
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                commands.append("quit")
            elif event.type == pygame.KEYDOWN and event.key in KEY_COMMANDS:
                commands.append(KEY_COMMANDS[event.key])
        return commands

    def wait_frame(self, fps: float) -> float:
        """Yield to the display refresh; returns milliseconds since the last call."""
        if self._clock is None:
            return 0.0
        return float(self._clock.tick(fps))

    def close(self) -> None:
        if not self._opened:
            return
        pygame.display.quit()
        self._opened = False
        self.screen = None
        self._clock = None
        self._font = None
