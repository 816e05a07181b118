"""Global constants for the devlink application."""

# Collection names
PROFILES_COLLECTION = "profile"
FOLLOWING_COLLECTION = "following"
FOLLOWERS_COLLECTION = "followers"
CHATS_COLLECTION = "chats"
MESSAGES_COLLECTION = "messages"
MESSAGE_REQUESTS_COLLECTION = "messageRequests"
AGGREGATED_COLLECTION = "aggregated"
POPULAR_POSTS_DOC = "popularPosts"
POSTS_COLLECTION = "posts"

# Thread types
THREAD_DIRECT = "direct"
THREAD_GROUP = "group"
GROUP_ID_PREFIX = "group_"
DIRECT_ID_SEPARATOR = "_"

# Message types
MESSAGE_TEXT = "text"
MESSAGE_IMAGE = "image"
MESSAGE_DELETED = "deleted"
IMAGE_PREVIEW_TEXT = "📷 Image"
DELETED_MESSAGE_TEXT = "This message was deleted"

# Message request states
REQUEST_PENDING = "pending"
REQUEST_ACCEPTED = "accepted"
REQUEST_REJECTED = "rejected"
DEFAULT_REQUEST_TEXT = "Hey, I would like to connect with you!"

# Receipt states
STATUS_SENT = "sent"
STATUS_DELIVERED = "delivered"
STATUS_READ = "read"

# Presence states
PRESENCE_ONLINE = "online"
PRESENCE_RECENTLY_ACTIVE = "recently_active"
PRESENCE_OFFLINE = "offline"
APP_STATE_ACTIVE = "active"
APP_STATE_BACKGROUND = "background"
APP_STATE_INACTIVE = "inactive"

# Presence thresholds (seconds)
ONLINE_THRESHOLD_SECONDS = 120
RECENTLY_ACTIVE_THRESHOLD_SECONDS = 600

# Firestore limits
FIRESTORE_BATCH_LIMIT = 400
READ_RECEIPT_WINDOW = 50
DELETE_PAGE_SIZE = 200

# Participant ids parsed from thread ids must be longer than this
MIN_PARSED_USER_ID_LENGTH = 10

UNKNOWN_USER_NAME = "Unknown User"
UNKNOWN_USERNAME = "unknown"

# Feed
POPULAR_POSTS_LIMIT = 20
