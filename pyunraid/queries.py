# pyUnraid - GraphQL documents
# -*- coding: utf-8 -*-
"""
 GraphQL queries and mutations for the Unraid API

 The storage query only touches fields Unraid keeps in memory (array state,
 filesystem usage, isSpinning, temp) so polling it does not wake disks that
 are in standby.
"""

ONLINE_QUERY = "query { online }"

SYSTEM_INFO_QUERY = """
query {
  metrics {
    cpu {
      percentTotal
    }
    memory {
      total
      used
      free
      percentTotal
    }
  }
  info {
    cpu {
      packages {
        temp
        totalPower
      }
    }
    os {
      uptime
    }
  }
  notifications {
    overview {
      unread {
        total
      }
    }
  }
}
"""

STORAGE_INFO_QUERY = """
query {
  array {
    state
    capacity {
      kilobytes {
        free
        used
        total
      }
    }
    parityCheckStatus {
      status
      progress
      running
      errors
    }
    boot {
      name
      fsSize
      fsFree
      fsUsed
    }
    caches {
      name
      fsSize
      fsFree
      fsUsed
    }
    disks {
      id
      name
      status
      temp
      isSpinning
      fsSize
      fsFree
      fsUsed
      type
    }
  }
}
"""

DOCKER_CONTAINERS_QUERY = """
query {
  docker {
    containers {
      id
      names
      image
      state
      status
      autoStart
    }
  }
}
"""

VMS_QUERY = """
query {
  vms {
    domain {
      uuid
      name
      state
    }
  }
}
"""

# Docker container control
START_CONTAINER_MUTATION = """
mutation StartContainer($id: PrefixedID!) {
  docker {
    start(id: $id) {
      id
      state
      status
    }
  }
}
"""

STOP_CONTAINER_MUTATION = """
mutation StopContainer($id: PrefixedID!) {
  docker {
    stop(id: $id) {
      id
      state
      status
    }
  }
}
"""

RESTART_CONTAINER_MUTATION = """
mutation RestartContainer($id: PrefixedID!) {
  docker {
    restart(id: $id) {
      id
      state
      status
    }
  }
}
"""

# Virtual machine control
START_VM_MUTATION = """
mutation StartVM($id: PrefixedID!) {
  vm {
    start(id: $id)
  }
}
"""

STOP_VM_MUTATION = """
mutation StopVM($id: PrefixedID!) {
  vm {
    stop(id: $id)
  }
}
"""

# Array control - stopping the array stops every container and VM using it
START_ARRAY_MUTATION = """
mutation StartArray {
  array {
    setState(input: { desiredState: START }) {
      id
      state
    }
  }
}
"""

STOP_ARRAY_MUTATION = """
mutation StopArray {
  array {
    setState(input: { desiredState: STOP }) {
      id
      state
    }
  }
}
"""

# Parity check control
START_PARITY_CHECK_MUTATION = """
mutation StartParityCheck($correct: Boolean!) {
  parityCheck {
    start(correct: $correct)
  }
}
"""

PAUSE_PARITY_CHECK_MUTATION = """
mutation PauseParityCheck {
  parityCheck {
    pause
  }
}
"""

RESUME_PARITY_CHECK_MUTATION = """
mutation ResumeParityCheck {
  parityCheck {
    resume
  }
}
"""

CANCEL_PARITY_CHECK_MUTATION = """
mutation CancelParityCheck {
  parityCheck {
    cancel
  }
}
"""

# Disk spin control
SPIN_UP_DISK_MUTATION = """
mutation SpinUpDisk($id: String!) {
  disk {
    spinUp(id: $id)
  }
}
"""

SPIN_DOWN_DISK_MUTATION = """
mutation SpinDownDisk($id: String!) {
  disk {
    spinDown(id: $id)
  }
}
"""
