"""User-facing notification titles and error texts."""

# Authentication messages
AUTH_INVALID_CREDENTIALS = "Invalid email or password"
AUTH_NOT_AUTHENTICATED = "You are not signed in"
AUTH_SESSION_CLOSED = "This session has been signed out"
AUTH_SESSION_EXPIRED = "Your session has expired, please sign in again"
AUTH_LOGOUT_SUCCESS = "Signed out"

# Chat list
CHAT_FETCH_FAILED = "Error fetching chats"
CHAT_NOT_FOUND = "Chat not found"
CHAT_CREATED = "Chat created successfully"
CHAT_CREATED_DESCRIPTION = "You can now start messaging."
CHAT_CREATE_FAILED = "Error creating chat"
CHAT_NAME_REQUIRED = "Chat name is required"
CHAT_FILTER_FAILED = "Error filtering chats"

# Messages
MESSAGE_FETCH_FAILED = "Error fetching messages"
MESSAGE_SEND_FAILED = "Failed to send message"

# Directory
LABEL_FETCH_FAILED = "Error fetching labels"
USER_FETCH_FAILED = "Error fetching users"
USER_ADDED = "User added successfully"
USER_ADDED_DESCRIPTION = "The user has been created and can now log in."
USER_ADD_FAILED = "Error adding user"
USER_ADD_COOLDOWN = "Please wait a moment before adding another user"
TEST_USER_ADDED = "Test user added successfully"
TEST_USER_ADDED_DESCRIPTION = "You can now start chatting with this user."
SIGNUP_RATE_LIMITED = "Too many sign-up requests. Try again shortly."

# Attachments
FILE_UPLOAD_FAILED = "Could not upload the file"

# General error messages
ERROR_BAD_REQUEST = "Invalid request"
