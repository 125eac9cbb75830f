"""Main window used by ``vector-tiles preview``."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from PySide6.QtCore import Qt
from PySide6.QtGui import QAction
from PySide6.QtWidgets import QFileDialog, QMainWindow, QMessageBox

from .errors import StyleLoadError, TileLoadingError
from .layer import VectorTileLayer
from .map_widget import VectorTileMapWidget
from .tile_manager import FeatureIdGetter


class PreviewWindow(QMainWindow):
    """Primary application window that hosts an interactive map widget."""

    def __init__(
        self,
        source: Any,
        *,
        get_feature_id: FeatureIdGetter,
        style: Path | str | None = None,
        debug: bool = False,
    ) -> None:
        super().__init__()
        self.resize(1024, 768)

        self._get_feature_id = get_feature_id
        self._style = style
        self._debug = debug

        self.map_widget = VectorTileMapWidget(self)
        self.map_widget.viewChanged.connect(self._update_window_title)
        self.setCentralWidget(self.map_widget)
        self.layer = self.map_widget.add_layer(self._create_layer(source))

        self._create_actions()
        self._create_menus()
        self._update_window_title()

    # ------------------------------------------------------------------
    def _create_layer(self, source: Any) -> VectorTileLayer:
        return VectorTileLayer(
            source,
            get_feature_id=self._get_feature_id,
            style=self._style,
            debug=self._debug,
            parent=self,
        )

    # ------------------------------------------------------------------
    def _create_actions(self) -> None:
        """Assemble actions that appear in the menu bar."""

        self._action_zoom_in = QAction("Zoom In", self)
        self._action_zoom_in.setShortcut(Qt.Key_Plus)
        self._action_zoom_in.triggered.connect(lambda: self.map_widget.set_zoom(self.map_widget.zoom + 1))

        self._action_zoom_out = QAction("Zoom Out", self)
        self._action_zoom_out.setShortcut(Qt.Key_Minus)
        self._action_zoom_out.triggered.connect(lambda: self.map_widget.set_zoom(self.map_widget.zoom - 1))

        self._action_open_tiles = QAction("Select Tile Directory…", self)
        self._action_open_tiles.triggered.connect(self._open_tile_directory)

    # ------------------------------------------------------------------
    def _create_menus(self) -> None:
        menu_bar = self.menuBar()

        view_menu = menu_bar.addMenu("View")
        view_menu.addAction(self._action_zoom_in)
        view_menu.addAction(self._action_zoom_out)

        file_menu = menu_bar.addMenu("File")
        file_menu.addAction(self._action_open_tiles)

    # ------------------------------------------------------------------
    def _open_tile_directory(self) -> None:
        """Allow the user to switch to a different tile directory."""

        path = QFileDialog.getExistingDirectory(self, "Select tile directory")
        if not path:
            return

        try:
            layer = self._create_layer(path)
        except (StyleLoadError, TileLoadingError) as exc:  # pragma: no cover - best effort error reporting
            QMessageBox.critical(self, "Error", f"Unable to open the tile directory:\n{exc}")
            return

        self.map_widget.remove_layer(self.layer)
        self.layer.shutdown()
        self.layer.deleteLater()
        self.layer = self.map_widget.add_layer(layer)

    # ------------------------------------------------------------------
    def _update_window_title(self, *_args: object) -> None:
        self.setWindowTitle(f"Vector Tiles Preview (zoom {self.map_widget.zoom:.2f})")

    # ------------------------------------------------------------------
    def closeEvent(self, event) -> None:  # type: ignore[override]
        self.map_widget.shutdown()
        super().closeEvent(event)


__all__ = ["PreviewWindow"]
