from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class EllipseGeometry:
    cx: float
    cy: float
    rx: float
    ry: float

    def bbox(self) -> Tuple[float, float, float, float]:
        return (self.cx - self.rx, self.cy - self.ry, self.cx + self.rx, self.cy + self.ry)


@dataclass(frozen=True)
class RegionDescriptor:
    """
    Fractional ellipse (or circle when ``radius`` is set) relative to image width/height.
    Circle radii are a fraction of the image width on both axes.
    """

    cx: float
    cy: float
    rx: float = 0.0
    ry: float = 0.0
    radius: Optional[float] = None

    @classmethod
    def circle(cls, cx: float, cy: float, radius: float) -> "RegionDescriptor":
        return cls(cx=cx, cy=cy, rx=radius, ry=radius, radius=radius)

    @classmethod
    def ellipse(cls, cx: float, cy: float, rx: float, ry: float) -> "RegionDescriptor":
        return cls(cx=cx, cy=cy, rx=rx, ry=ry)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegionDescriptor":
        if "radius" in data:
            cx = data.get("cx", data.get("x"))
            cy = data.get("cy", data.get("y"))
            return cls.circle(float(cx), float(cy), float(data["radius"]))
        return cls.ellipse(float(data["cx"]), float(data["cy"]), float(data["rx"]), float(data["ry"]))

    @property
    def is_circle(self) -> bool:
        return self.radius is not None

    def to_pixels(self, width: float, height: float) -> EllipseGeometry:
        if self.is_circle:
            r = self.radius * width
            return EllipseGeometry(cx=self.cx * width, cy=self.cy * height, rx=r, ry=r)
        return EllipseGeometry(
            cx=self.cx * width,
            cy=self.cy * height,
            rx=self.rx * width,
            ry=self.ry * height,
        )

    def as_ellipse(self, width: float, height: float) -> "RegionDescriptor":
        if not self.is_circle:
            return self
        return RegionDescriptor.ellipse(
            self.cx,
            self.cy,
            self.radius,
            self.radius * width / height,
        )

    def shrunk(self, ry_factor: float, cy_shift: float, width: float, height: float) -> "RegionDescriptor":
        base = self.as_ellipse(width, height)
        return replace(base, ry=base.ry * ry_factor, cy=base.cy - cy_shift)

    def to_dict(self) -> Dict[str, float]:
        if self.is_circle:
            return {"cx": self.cx, "cy": self.cy, "radius": self.radius}
        return {"cx": self.cx, "cy": self.cy, "rx": self.rx, "ry": self.ry}


@dataclass(frozen=True)
class PreserveRegion:
    x: float
    y: float
    w: float
    h: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PreserveRegion":
        return cls(x=float(data["x"]), y=float(data["y"]), w=float(data["w"]), h=float(data["h"]))

    def to_box(self, width: int, height: int) -> Tuple[int, int, int, int]:
        left = min(max(0, int(round(width * self.x))), width - 1)
        top = min(max(0, int(round(height * self.y))), height - 1)
        box_w = max(1, int(round(width * self.w)))
        box_h = max(1, int(round(height * self.h)))
        return (left, top, min(width, left + box_w), min(height, top + box_h))

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "w": self.w, "h": self.h}
