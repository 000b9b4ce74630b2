"""Core platform primitives shared by services and blueprints."""
