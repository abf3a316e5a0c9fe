"""Object-storage CDN client and folder sync."""
