import numpy as np

def calculate_distance_3d(p1, p2):
    """Calculates the Euclidean distance between two 3D points."""
    return float(np.linalg.norm(np.array(p1, dtype=float) - np.array(p2, dtype=float)))

def calculate_heading(p1, p2):
    """Returns the planar heading in radians from p1 towards p2."""
    return float(np.arctan2(p2[1] - p1[1], p2[0] - p1[0]))

def segment_point_distance(p1, p2, point):
    """Shortest distance between the segment p1-p2 and a point."""
    start, end, target = np.array(p1, dtype=float), np.array(p2, dtype=float), np.array(point, dtype=float)
    direction = end - start
    length_sq = np.dot(direction, direction)
    if length_sq == 0:
        return float(np.linalg.norm(target - start))
    t = np.clip(np.dot(target - start, direction) / length_sq, 0.0, 1.0)
    projection = start + t * direction
    return float(np.linalg.norm(projection - target))

def point_in_cylinder(point, center, radius, height):
    """Check if a point lies in an upright cylinder whose base sits at center."""
    x, y, z = point
    cx, cy, cz = center
    if not (cz <= z <= cz + height):
        return False
    return (x - cx) ** 2 + (y - cy) ** 2 <= radius ** 2

def clamp_unit(value):
    """Clamps a score into [0, 1]."""
    return float(min(1.0, max(0.0, value)))
