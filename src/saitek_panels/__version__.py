"""saitek-panels version information."""

__version__ = "0.3.0"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Version history:
# 0.1.0 - Radio and Multi panels over pyusb, 7-segment codec, mock transport
# 0.2.0 - Switch panel gear lights, input polling with edge events, hidapi backend
# 0.3.0 - FIP framebuffer pipeline (resize policies, test patterns), panel
#         manager, saitek-panels CLI and FastAPI adapter
