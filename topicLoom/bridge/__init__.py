from topicLoom.bridge.bridge import TopicBridge
from topicLoom.bridge.lifecycle import ConnectionLifecycleManager

__all__ = ["ConnectionLifecycleManager", "TopicBridge"]
