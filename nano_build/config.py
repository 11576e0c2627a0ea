"""
config.py - Build configuration

Static tables consumed by the pipeline and the downloader. Everything here
can be overridden from the command line where it makes sense.
"""
from __future__ import annotations

from typing import Final, NamedTuple


# =============================================================================
# DIRECTORIES
# =============================================================================

NANO_SOURCE_DIR: Final[str] = "NanoFiltersSource"
NANO_OUTPUT_DIR: Final[str] = "NanoFilters"
THIRD_PARTY_DIR: Final[str] = "ThirdParty"
THIRD_PARTY_OUTPUT_DIR: Final[str] = "ThirdPartyMin"


# =============================================================================
# PROVENANCE
# =============================================================================

NANO_LICENSE: Final[str] = "GPL-3.0"
NANO_SOURCE_PREFIX: Final[str] = (
    "https://github.com/NanoAdblocker/NanoFilters/tree/master/"
)

PSL_LICENSE: Final[str] = "MPL-2.0"
UBLOCK_LICENSE: Final[str] = "GPL-3.0"

#: Conventional expiry values, in days
FILTER_EXPIRES: Final[int] = 1
RESOURCE_EXPIRES: Final[int] = 3
PSL_EXPIRES: Final[int] = 7


# =============================================================================
# NANO LISTS
# =============================================================================

#: (file name, title) of every first-party filter list
NANO_FILTERS: Final[tuple[tuple[str, str], ...]] = (
    ("NanoBase.txt", "Nano filters"),
    ("NanoAnnoyance.txt", "Nano filters - Annoyance"),
    ("NanoWhitelist.txt", "Nano filters - Whitelist"),
)

NANO_RESOURCES: Final[tuple[str, ...]] = ("NanoResources.txt",)


# =============================================================================
# THIRD PARTY
# =============================================================================

class Upstream(NamedTuple):
    """
    One third-party list to download.

    Attributes:
        name: File name under the third-party directory
        url: Upstream HTTPS URL
        kind: How the pipeline minimizes it ("filter", "hosts", "resource",
              "psl", "meta"), or None when it is shipped as downloaded
        sanitize: Run the content sanitizer after download
        license: License shown in the compiled header
        title: Title shown in the compiled header (filter and hosts kinds)
    """
    name: str
    url: str
    kind: str | None = None
    sanitize: bool = False
    license: str = "See source"
    title: str | None = None


UPSTREAMS: Final[tuple[Upstream, ...]] = (
    Upstream("PublicSuffix.dat", "https://publicsuffix.org/list/public_suffix_list.dat", "psl", license=PSL_LICENSE),
    Upstream("uBlockResources.txt", "https://raw.githubusercontent.com/uBlockOrigin/uAssets/master/filters/resources.txt", "resource", license=UBLOCK_LICENSE),

    Upstream("NanoDefender.txt", "https://raw.githubusercontent.com/jspenguin2017/uBlockProtector/master/uBlockProtectorList.txt"),

    Upstream("uBlockBase.txt", "https://raw.githubusercontent.com/uBlockOrigin/uAssets/master/filters/filters.txt"),
    Upstream("uBlockBadware.txt", "https://raw.githubusercontent.com/uBlockOrigin/uAssets/master/filters/badware.txt"),
    Upstream("uBlockPrivacy.txt", "https://raw.githubusercontent.com/uBlockOrigin/uAssets/master/filters/privacy.txt"),
    Upstream("uBlockAbuse.txt", "https://raw.githubusercontent.com/uBlockOrigin/uAssets/master/filters/resource-abuse.txt"),
    Upstream("uBlockUnbreak.txt", "https://raw.githubusercontent.com/uBlockOrigin/uAssets/master/filters/unbreak.txt"),

    Upstream("WarningRemoval.txt", "https://easylist-downloads.adblockplus.org/antiadblockfilters.txt"),
    Upstream("EasyList.txt", "https://easylist-downloads.adblockplus.org/easylist.txt"),

    Upstream("EasyPrivacy.txt", "https://easylist-downloads.adblockplus.org/easyprivacy.txt"),

    Upstream("MalwareDomain0.txt", "https://www.malwaredomainlist.com/hostslist/hosts.txt", "hosts"),
    Upstream("MalwareDomain1.txt", "https://mirror1.malwaredomains.com/files/justdomains", "hosts", sanitize=True),

    Upstream("PeterLowe.txt", "https://pgl.yoyo.org/adservers/serverlist.php?hostformat=hosts&showintro=1&mimetype=plaintext", "hosts"),
)

#: Machine-readable asset manifest, minimized with the JSON pass-through
ASSETS_FILE: Final[str] = "assets.json"


# =============================================================================
# NETWORK
# =============================================================================

DEFAULT_TIMEOUT: Final[int] = 60
DEFAULT_DELAY: Final[float] = 1.0
CHUNK_SIZE: Final[int] = 65536
USER_AGENT: Final[str] = "Mozilla/5.0 (compatible; NanoBuild/1.0)"
