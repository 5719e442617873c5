"""GymApp class booking backend."""
