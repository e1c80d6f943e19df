"""Railway network pathfinding and polyline assembly."""
